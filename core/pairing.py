"""
Marshmallows - Pairing Directory

The only place that answers "who is my partner?". Nothing caches the
answer: every call reads the couple row again and re-checks that it still
holds exactly two distinct members.
"""

import logging

from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction

from .exceptions import (
    InvalidCoupleSize,
    MarshmallowsError,
    NotFound,
    NotPaired,
    StoreWriteFailed,
)
from .models import Couple, Profile

logger = logging.getLogger(__name__)

User = get_user_model()


def user_id_of(identity):
    """Accept either a User or a raw user id."""
    return getattr(identity, 'pk', identity)


def display_name(user):
    profile = getattr(user, 'profile', None)
    return profile.name if profile else user.username


class PairingDirectory:
    """Resolves a user to their couple and to their partner."""

    def couple_for(self, user):
        """
        The couple this user belongs to.

        Raises NotPaired when the user has not created or joined one yet.
        """
        couple = Couple.objects.filter(profiles__user_id=user_id_of(user)).first()
        if couple is None:
            raise NotPaired('Create a couple or join your partner to get started.')
        return couple

    def resolve(self, user):
        """Return (couple, partner) for a fully paired user."""
        uid = user_id_of(user)
        couple = self.couple_for(uid)

        if not couple.is_paired:
            raise NotPaired()

        members = couple.member_ids
        if len(set(members)) != 2 or uid not in members:
            logger.critical(
                "Couple %s has invalid membership %s (resolving user %s)",
                couple.pk, members, uid,
            )
            raise InvalidCoupleSize(couple_id=couple.pk)

        partner_id = members[1] if members[0] == uid else members[0]
        return couple, User.objects.select_related('profile').get(pk=partner_id)

    def resolve_partner(self, user):
        """Return the other member of the user's couple."""
        return self.resolve(user)[1]

    # -------------------------------------------------------------------------
    # Creating and completing a couple
    # -------------------------------------------------------------------------

    def create_couple(self, user, expected_partner=''):
        """
        Start a new couple with `user` as the first member.

        The partner completes it later with the invite code. When
        `expected_partner` is given, only that username may join.
        """
        try:
            with transaction.atomic():
                profile = Profile.objects.select_for_update().get(user=user)
                if profile.couple_id is not None:
                    raise MarshmallowsError('You are already part of a couple.', status_code=409)

                couple = Couple.objects.create(
                    user1=user,
                    expected_partner=(expected_partner or '').strip(),
                    member_names={str(user.pk): profile.name},
                )
                profile.couple = couple
                profile.save(update_fields=['couple'])
        except DatabaseError as exc:
            logger.exception("Failed to create couple for user %s", user.pk)
            raise StoreWriteFailed('Failed to set up couple connection. Please try again.') from exc

        logger.info("Created couple %s for user %s", couple.pk, user.pk)
        return couple

    def join_couple(self, user, invite_code):
        """
        Become the second member of an existing couple.

        A couple never grows past two members: joining a full couple fails
        with InvalidCoupleSize.
        """
        invite_code = (invite_code or '').strip()
        if not invite_code:
            raise MarshmallowsError('Please enter an invite code.')

        try:
            with transaction.atomic():
                couple = Couple.objects.select_for_update().filter(invite_code=invite_code).first()
                if couple is None:
                    raise NotFound('Couple', invite_code, message='Invalid invite code')

                profile = Profile.objects.select_for_update().get(user=user)
                if couple.user1_id == user.pk:
                    raise MarshmallowsError("You can't join your own couple")
                if couple.user2_id is not None:
                    raise InvalidCoupleSize(
                        'This couple already has two members',
                        couple_id=couple.pk,
                        status_code=409,
                    )
                if profile.couple_id is not None:
                    raise MarshmallowsError('You are already part of a couple.', status_code=409)
                if couple.expected_partner and couple.expected_partner != user.get_username():
                    raise MarshmallowsError('This invite is for someone else.', status_code=403)

                couple.user2 = user
                couple.member_names = {**couple.member_names, str(user.pk): profile.name}
                couple.save(update_fields=['user2', 'member_names'])

                profile.couple = couple
                profile.save(update_fields=['couple'])
        except DatabaseError as exc:
            logger.exception("Failed to join couple with code for user %s", user.pk)
            raise StoreWriteFailed('Failed to set up couple connection. Please try again.') from exc

        logger.info("User %s joined couple %s", user.pk, couple.pk)
        return couple

    def partner_summary(self, user):
        """Pairing state for the UI: no couple, waiting for partner, or paired."""
        try:
            couple = self.couple_for(user)
        except NotPaired:
            return {'state': 'unpaired', 'couple': None, 'partner': None}

        try:
            _, partner = self.resolve(user)
        except NotPaired:
            return {
                'state': 'waiting',
                'couple': {'id': couple.pk, 'invite_code': couple.invite_code},
                'partner': None,
            }

        return {
            'state': 'paired',
            'couple': {'id': couple.pk},
            'partner': {
                'id': partner.pk,
                'name': display_name(partner),
                'avatar_url': partner.profile.avatar_url,
            },
        }


directory = PairingDirectory()
