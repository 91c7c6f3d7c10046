"""
Marshmallows - Views
====================

JSON endpoints for the mobile app:
1. Auth + pairing (create a couple, join with an invite code)
2. Marshmallows - send, mark read, snapshot polling and a live stream
3. Daily check-ins and memories
4. Device registration, media uploads and settings

Every error answers {'success': False, 'error': <message>} with the
status carried by the exception.

The app is not a browser and never holds a CSRF cookie, so the JSON
endpoints are csrf_exempt. The session cookie is SameSite=Lax, which
keeps other sites from posting with it.
"""

import json
import logging
import queue
from functools import wraps

from django.conf import settings
from django.contrib.auth import login, logout
from django.contrib.auth.decorators import login_required
from django.contrib.auth.forms import AuthenticationForm
from django.http import JsonResponse, StreamingHttpResponse
from django.utils.dateparse import parse_date
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from .devices import registry
from .events import form_errors, quick_picks, store
from .exceptions import InvalidEvent, MarshmallowsError, NotPaired, SubscriptionError
from .identity import sign_in, update_settings, verify_identity_token
from .media import upload_memory_photo, upload_memory_video
from .models import MarshmallowKind, MemorySource
from .pairing import directory
from .subscriptions import hub, message_snapshot

logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================

def json_errors(view):
    """Turn app errors raised by a view into the JSON error shape."""

    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except MarshmallowsError as exc:
            body = {'success': False, 'error': exc.message}
            errors = getattr(exc, 'errors', None)
            if errors:
                body['errors'] = errors
            return JsonResponse(body, status=exc.status_code)

    return wrapper


def read_payload(request):
    """Request body as a dict, whether sent as JSON or as a form."""
    if request.content_type == 'application/json':
        try:
            payload = json.loads(request.body or b'{}')
        except ValueError as exc:
            raise InvalidEvent('Request body is not valid JSON.') from exc
        if not isinstance(payload, dict):
            raise InvalidEvent('Request body must be a JSON object.')
        return payload
    return request.POST.dict()


def parse_day(value, field='date'):
    if not value:
        return None
    day = parse_date(value) if isinstance(value, str) else None
    if day is None:
        raise InvalidEvent('Invalid date.', errors={field: ['Use YYYY-MM-DD.']})
    return day


def checkin_json(checkin):
    if checkin is None:
        return None
    return {
        'id': checkin.pk,
        'couple_id': checkin.couple_id,
        'author_id': checkin.author_id,
        'date': checkin.date.isoformat(),
        'mood': checkin.mood,
        'mood_emoji': checkin.mood_emoji,
        'mood_note': checkin.mood_note,
        'gratitude': checkin.gratitude,
        'created_at': checkin.created_at.isoformat(),
    }


def memory_json(memory):
    if memory is None:
        return None
    return {
        'id': memory.pk,
        'couple_id': memory.couple_id,
        'author_id': memory.author_id,
        'title': memory.title,
        'description': memory.description,
        'photo_urls': memory.photo_urls,
        'video_urls': memory.video_urls,
        'tags': memory.tags,
        'date': memory.date.isoformat(),
        'source': memory.source,
        'created_at': memory.created_at.isoformat(),
    }


# =============================================================================
# AUTHENTICATION
# =============================================================================

@csrf_exempt
@require_http_methods(['POST'])
def login_view(request):
    """Session login with username and password."""
    form = AuthenticationForm(request, data=read_payload(request))
    if not form.is_valid():
        return JsonResponse(
            {'success': False, 'error': 'Invalid username or password.', 'errors': form_errors(form)},
            status=400,
        )
    user = form.get_user()
    login(request, user)
    return JsonResponse({'success': True, 'user': {'id': user.pk, 'name': user.profile.name}})


@csrf_exempt
@require_http_methods(['POST'])
@json_errors
def identity_login(request):
    """
    Session login with a signed hand-off from the sign-in service.

    Creates the user on first sign-in.
    """
    payload = read_payload(request)
    identity, name, avatar_url = verify_identity_token(payload.get('token', ''))
    user = sign_in(identity, name, avatar_url)
    login(request, user, backend='django.contrib.auth.backends.ModelBackend')
    logger.info("User %s signed in through the identity hand-off", user.pk)
    return JsonResponse({'success': True, 'user': {'id': user.pk, 'name': user.profile.name}})


@csrf_exempt
@require_http_methods(['POST'])
def logout_view(request):
    logout(request)
    return JsonResponse({'success': True})


# =============================================================================
# COUPLE PAIRING
# =============================================================================

@login_required
@require_http_methods(['GET'])
def partner_status(request):
    """unpaired / waiting (with the invite code to share) / paired."""
    return JsonResponse({'success': True, **directory.partner_summary(request.user)})


@csrf_exempt
@login_required
@require_http_methods(['POST'])
@json_errors
def create_couple(request):
    payload = read_payload(request)
    couple = directory.create_couple(request.user, payload.get('expected_partner', ''))
    return JsonResponse(
        {'success': True, 'couple': {'id': couple.pk, 'invite_code': couple.invite_code}},
        status=201,
    )


@csrf_exempt
@login_required
@require_http_methods(['POST'])
@json_errors
def join_couple(request):
    payload = read_payload(request)
    couple = directory.join_couple(request.user, payload.get('invite_code', ''))
    return JsonResponse({'success': True, 'couple': {'id': couple.pk}})


# =============================================================================
# DEVICES
# =============================================================================

@csrf_exempt
@login_required
@require_http_methods(['POST'])
@json_errors
def register_device(request):
    payload = read_payload(request)
    registry.register(request.user, payload.get('token', ''))
    return JsonResponse({'success': True})


# =============================================================================
# MARSHMALLOWS
# =============================================================================

@csrf_exempt
@login_required
@require_http_methods(['GET', 'POST'])
@json_errors
def marshmallows(request):
    """
    GET: the couple's marshmallows, newest first (polling fallback for the stream).
    POST: send a marshmallow to your partner.
    """
    if request.method == 'GET':
        couple = directory.couple_for(request.user)
        snapshot = message_snapshot(couple.pk)
        return JsonResponse({'success': True, 'marshmallows': [m.as_dict() for m in snapshot]})

    payload = read_payload(request)
    marshmallow_id = store.append_marshmallow(
        request.user,
        message=payload.get('message', ''),
        kind=payload.get('kind', MarshmallowKind.CUSTOM),
        recipient=payload.get('recipient'),
        quick_pick=payload.get('quick_pick'),
        photo_url=payload.get('photo_url', ''),
    )
    return JsonResponse({'success': True, 'id': marshmallow_id}, status=201)


@csrf_exempt
@login_required
@require_http_methods(['POST'])
@json_errors
def mark_read(request, marshmallow_id):
    marshmallow = store.mark_marshmallow_read(marshmallow_id, reader=request.user)
    return JsonResponse({'success': True, 'id': marshmallow.pk, 'read': marshmallow.read})


class SnapshotStream:
    """
    Server-sent events bridging one hub subscription to one HTTP client.

    Each event carries the full snapshot. A comment line is written when
    nothing changed for a while so proxies keep the connection open.
    """

    def __init__(self, couple_id, heartbeat):
        self.heartbeat = heartbeat
        self._queue = queue.Queue()
        # Raises SubscriptionSetupFailed before any bytes are sent
        self._unsubscribe = hub.subscribe(couple_id, self._on_update, self._on_error)

    def _on_update(self, snapshot):
        self._queue.put(('snapshot', snapshot))

    def _on_error(self, error):
        self._queue.put(('error', error))

    def __iter__(self):
        try:
            while True:
                try:
                    kind, payload = self._queue.get(timeout=self.heartbeat)
                except queue.Empty:
                    yield ': keep-alive\n\n'
                    continue

                if kind == 'error':
                    message = payload.message if isinstance(payload, SubscriptionError) else str(payload)
                    yield f'event: error\ndata: {json.dumps({"error": message})}\n\n'
                    return

                data = json.dumps([m.as_dict() for m in payload])
                yield f'event: snapshot\ndata: {data}\n\n'
        finally:
            self.close()

    def close(self):
        self._unsubscribe()


@login_required
@require_http_methods(['GET'])
@json_errors
def marshmallow_stream(request):
    couple = directory.couple_for(request.user)
    stream = SnapshotStream(couple.pk, getattr(settings, 'SUBSCRIPTION_HEARTBEAT_SECONDS', 15))
    response = StreamingHttpResponse(stream, content_type='text/event-stream')
    response['Cache-Control'] = 'no-cache'
    response['X-Accel-Buffering'] = 'no'
    return response


@login_required
@require_http_methods(['GET'])
def quick_pick_list(request):
    picks = quick_picks(request.GET.get('category') or None)
    return JsonResponse({
        'success': True,
        'quick_picks': [
            {'id': p.pk, 'message': p.message, 'emoji': p.emoji, 'category': p.category}
            for p in picks
        ],
    })


# =============================================================================
# DAILY CHECK-INS
# =============================================================================

@csrf_exempt
@login_required
@require_http_methods(['POST'])
@json_errors
def checkins(request):
    payload = read_payload(request)
    checkin_id = store.append_checkin(
        request.user,
        mood=payload.get('mood', ''),
        gratitude=payload.get('gratitude', ''),
        mood_note=payload.get('mood_note', ''),
        date=parse_day(payload.get('date')),
    )
    return JsonResponse({'success': True, 'id': checkin_id}, status=201)


@login_required
@require_http_methods(['GET'])
@json_errors
def checkin_today(request):
    """Your check-in, your partner's, and your streak."""
    user = request.user
    mine = store.todays_checkin(user)
    try:
        partner = store.partner_todays_checkin(user)
    except NotPaired:
        partner = None

    return JsonResponse({
        'success': True,
        'checkin': checkin_json(mine),
        'partner_checkin': checkin_json(partner),
        'streak': store.checkin_streak(user),
    })


@login_required
@require_http_methods(['GET'])
def checkin_history(request):
    try:
        limit = max(1, min(int(request.GET.get('limit', 30)), 365))
    except ValueError:
        limit = 30
    history = store.checkin_history(request.user, limit=limit)
    return JsonResponse({'success': True, 'checkins': [checkin_json(c) for c in history]})


# =============================================================================
# MEMORIES
# =============================================================================

@csrf_exempt
@login_required
@require_http_methods(['GET', 'POST'])
@json_errors
def memories(request):
    """
    GET: the couple's memories by memory date (optionally ?tag=).
    POST: save a memory; your partner is notified.
    """
    if request.method == 'GET':
        couple = directory.couple_for(request.user)
        tag = request.GET.get('tag')
        rows = store.memories_by_tag(couple, tag) if tag else store.memories_for_couple(couple)
        return JsonResponse({'success': True, 'memories': [memory_json(m) for m in rows]})

    payload = read_payload(request)
    memory_id = store.append_memory(
        request.user,
        title=payload.get('title', ''),
        date=parse_day(payload.get('date')),
        description=payload.get('description', ''),
        photo_urls=payload.get('photo_urls'),
        video_urls=payload.get('video_urls'),
        tags=payload.get('tags'),
        source=payload.get('source', MemorySource.MANUAL),
    )
    return JsonResponse({'success': True, 'id': memory_id}, status=201)


@login_required
@require_http_methods(['GET'])
@json_errors
def random_memory(request):
    couple = directory.couple_for(request.user)
    return JsonResponse({'success': True, 'memory': memory_json(store.random_memory(couple))})


# =============================================================================
# MEDIA
# =============================================================================

def _upload(request, uploader):
    upload = request.FILES.get('file')
    if upload is None:
        raise InvalidEvent('Choose a file to upload.', errors={'file': ['This field is required.']})
    couple = directory.couple_for(request.user)
    return JsonResponse({'success': True, 'url': uploader(couple.pk, upload)}, status=201)


@csrf_exempt
@login_required
@require_http_methods(['POST'])
@json_errors
def upload_photo(request):
    return _upload(request, upload_memory_photo)


@csrf_exempt
@login_required
@require_http_methods(['POST'])
@json_errors
def upload_video(request):
    return _upload(request, upload_memory_video)


# =============================================================================
# PROFILE & SETTINGS
# =============================================================================

@csrf_exempt
@login_required
@require_http_methods(['GET', 'POST'])
@json_errors
def settings_view(request):
    """Display name, timezone, reminder times and sync preference."""
    profile = request.user.profile
    if request.method == 'POST':
        profile = update_settings(request.user, **read_payload(request))
        logger.info("User %s updated settings", request.user.pk)

    return JsonResponse({
        'success': True,
        'settings': {
            'display_name': profile.display_name,
            'avatar_url': profile.avatar_url,
            'timezone': profile.timezone,
            'morning_checkin_time': profile.morning_checkin_time,
            'evening_reminder_time': profile.evening_reminder_time,
            'wifi_only_sync': profile.wifi_only_sync,
        },
    })
