"""
Marshmallows - Push Delivery

Clients for the push-delivery service. A client takes one PushMessage and
returns a PushResult; an unreachable service or an invalid device address
is a normal failed result, not an exception.

The client in use is chosen by settings.PUSH_CLIENT (a dotted path), the
same way Django picks its e-mail backend.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

DEFAULT_EXPO_PUSH_URL = 'https://exp.host/--/api/v2/push/send'


@dataclass(frozen=True)
class PushMessage:
    to: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    channel_id: str = 'default'


@dataclass(frozen=True)
class PushResult:
    ok: bool
    error: str = ''
    ticket_id: str = ''
    # The service says this address no longer reaches any device
    device_not_registered: bool = False


class ExpoPushClient:
    """Sends through the Expo push service (the mobile app registers Expo tokens)."""

    def __init__(self, url: Optional[str] = None, access_token: Optional[str] = None,
                 timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None):
        self.url = url or getattr(settings, 'EXPO_PUSH_URL', DEFAULT_EXPO_PUSH_URL)
        self.access_token = access_token if access_token is not None else getattr(settings, 'EXPO_ACCESS_TOKEN', '')
        self.timeout = timeout or getattr(settings, 'PUSH_TIMEOUT_SECONDS', 10.0)
        self.transport = transport

    def _headers(self):
        headers = {
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        }
        if self.access_token:
            headers['Authorization'] = f'Bearer {self.access_token}'
        return headers

    def send(self, message: PushMessage) -> PushResult:
        payload = {
            'to': message.to,
            'title': message.title,
            'body': message.body,
            'data': message.data,
            'sound': 'default',
            'channelId': message.channel_id,
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.url, json=payload, headers=self._headers())
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as e:
            logger.warning("Push service request failed: %s", e)
            return PushResult(ok=False, error=str(e) or type(e).__name__)
        except ValueError:
            return PushResult(ok=False, error='Push service returned an unreadable response')

        ticket = body.get('data') if isinstance(body, dict) else None
        if isinstance(ticket, list):
            ticket = ticket[0] if ticket else None
        if not isinstance(ticket, dict):
            errors = body.get('errors') if isinstance(body, dict) else None
            return PushResult(ok=False, error=str(errors or 'Push service returned no ticket'))

        if ticket.get('status') == 'ok':
            return PushResult(ok=True, ticket_id=ticket.get('id', ''))

        details = ticket.get('details') or {}
        return PushResult(
            ok=False,
            error=ticket.get('message') or details.get('error') or 'Push rejected',
            device_not_registered=details.get('error') == 'DeviceNotRegistered',
        )


# Messages "sent" by LocmemPushClient
outbox = []


class LocmemPushClient:
    """Keeps messages in `outbox` instead of sending them. For development and tests."""

    def send(self, message: PushMessage) -> PushResult:
        outbox.append(message)
        return PushResult(ok=True, ticket_id=f'locmem-{len(outbox)}')


def get_push_client():
    return import_string(settings.PUSH_CLIENT)()
