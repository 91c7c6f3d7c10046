from django.apps import AppConfig
from django.conf import settings


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'core'

    def ready(self):
        from . import signals  # noqa: F401
        from .notifications import dispatcher
        from .subscriptions import hub

        redis_url = getattr(settings, 'CHANGE_FEED_REDIS_URL', '')
        if redis_url:
            from .relay import RedisRelay

            hub.relay = RedisRelay(hub, redis_url, channel=settings.CHANGE_FEED_CHANNEL)

        hub.connect()
        dispatcher.connect()
