import logging

import sentry_sdk
from sentry_sdk.integrations.aiohttp import AioHttpIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from api_platform import config

from .version import get_app_version


def get_sentry_kwargs():
    """
    Returns Sentry configuration kwargs.

    The integrations are created fresh each time so that they hook into
    aiohttp and logging when sentry_sdk.init() is called.
    """
    return {
        "dsn": config.SENTRY_DSN,
        "integrations": [
            AioHttpIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        "release": get_app_version(),
        "environment": config.BASE_URL or "unknown",
        "traces_sample_rate": config.SENTRY_SAMPLE_RATE or 1.0,
    }


def init_sentry() -> bool:
    """Initialize Sentry once, when a DSN is configured."""
    if not config.SENTRY_DSN or sentry_sdk.get_client().is_active():
        return False
    sentry_sdk.init(**get_sentry_kwargs())
    return True
