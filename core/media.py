"""
Marshmallows - Media

Stores photo and video bytes with Cloudinary and hands back the URL that
marshmallows and memories reference. Photos are capped at 1920x1920.
"""

import logging

import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from .exceptions import MediaUploadFailed

logger = logging.getLogger(__name__)

PHOTO_TRANSFORMATION = [
    {'width': 1920, 'height': 1920, 'crop': 'limit', 'quality': 'auto:good'},
]


def _folder(couple_id):
    return f'couples/{couple_id}/memories'


def upload_memory_photo(couple_id, file):
    """Upload an image and return its stored-asset URL."""
    try:
        result = cloudinary.uploader.upload(
            file,
            folder=_folder(couple_id),
            resource_type='image',
            transformation=PHOTO_TRANSFORMATION,
        )
    except CloudinaryError as exc:
        logger.error("Photo upload for couple %s failed: %s", couple_id, exc)
        raise MediaUploadFailed() from exc

    logger.info("Uploaded photo %s for couple %s", result.get('public_id'), couple_id)
    return result['secure_url']


def upload_memory_video(couple_id, file):
    """Upload a video and return its stored-asset URL."""
    try:
        result = cloudinary.uploader.upload(
            file,
            folder=_folder(couple_id),
            resource_type='video',
        )
    except CloudinaryError as exc:
        logger.error("Video upload for couple %s failed: %s", couple_id, exc)
        raise MediaUploadFailed('Failed to upload video. Please try again.') from exc

    logger.info("Uploaded video %s for couple %s", result.get('public_id'), couple_id)
    return result['secure_url']
