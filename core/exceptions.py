"""
Marshmallows - Errors

Every error carries a user-readable message and the HTTP status the
views answer with, so the UI can offer a retry without guessing the cause.
"""


class MarshmallowsError(Exception):
    """Base exception for all app errors."""
    status_code = 400

    def __init__(self, message, status_code=None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class InvalidEvent(MarshmallowsError):
    """Malformed event payload. Nothing was persisted."""

    def __init__(self, message='Invalid event.', errors=None):
        self.errors = errors or {}
        super().__init__(message, status_code=400)


class CheckinAlreadyExists(InvalidEvent):
    """A second check-in by the same author for the same date."""

    def __init__(self, date):
        self.date = date
        super().__init__(
            'You already checked in today!',
            errors={'date': [f'A check-in for {date.isoformat()} already exists.']},
        )
        self.status_code = 409


class NotFound(MarshmallowsError):
    def __init__(self, resource, id, message=None):
        self.resource = resource
        self.id = id
        super().__init__(message or f"{resource} with id {id} not found", status_code=404)


class NotPaired(MarshmallowsError):
    """The user has no partner yet. The UI shows this as "waiting for partner"."""

    def __init__(self, message='Waiting for your partner to join.'):
        super().__init__(message, status_code=409)


class InvalidCoupleSize(MarshmallowsError):
    """
    Couple membership is not exactly two users.

    Raised defensively when stored data is corrupt, and with a plain user
    message when someone tries to join a couple that is already full.
    """

    def __init__(self, message='Couple membership is corrupt.', couple_id=None, status_code=500):
        self.couple_id = couple_id
        super().__init__(message, status_code=status_code)


class SubscriptionSetupFailed(MarshmallowsError):
    def __init__(self, message='Failed to subscribe to marshmallows. Please try again.'):
        super().__init__(message, status_code=400)


class SubscriptionError(MarshmallowsError):
    """Delivered once through on_error; the subscription is then over."""

    def __init__(self, message='Failed to load marshmallows. Please try again.'):
        super().__init__(message, status_code=503)


class DeliveryFailed(MarshmallowsError):
    """A push could not be delivered. Reported, never raised to the writer."""

    def __init__(self, event_kind, event_id, reason):
        self.event_kind = event_kind
        self.event_id = event_id
        self.reason = reason
        super().__init__(
            f"Push for {event_kind} {event_id} failed: {reason}", status_code=502
        )


class StoreWriteFailed(MarshmallowsError):
    """A write did not complete. The message is stable per operation."""

    def __init__(self, message):
        super().__init__(message, status_code=503)


class MediaUploadFailed(MarshmallowsError):
    def __init__(self, message='Failed to upload photo. Please try again.'):
        super().__init__(message, status_code=502)


class IdentityRejected(MarshmallowsError):
    """A sign-in hand-off that is unsigned, tampered with or expired."""

    def __init__(self, message='Sign-in expired. Please sign in again.'):
        super().__init__(message, status_code=401)
