"""Optional Sentry wiring.

Webhook bodies carry personal health data, so events leave the process
without request bodies; the raw payload stays in the local sync log.
"""
import logging

import packages.config as config

try:  # Optional dependency
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration
except ImportError:  # pragma: no cover - optional
    sentry_sdk = None


logger = logging.getLogger("fitness.errors")

_enabled = False


def scrub_event(event, hint=None):
    request = event.get("request")
    if isinstance(request, dict):
        request.pop("data", None)
        request.pop("cookies", None)
    return event


def _integrations(enable_fastapi: bool) -> list:
    integrations = [LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)]
    if enable_fastapi:
        integrations += [FastApiIntegration(), StarletteIntegration()]
    return integrations


def init_error_reporting(service_name: str, enable_fastapi: bool = False) -> bool:
    global _enabled
    _enabled = False
    if not config.SENTRY_DSN or sentry_sdk is None:
        return False

    sentry_sdk.init(
        dsn=config.SENTRY_DSN,
        environment=config.SENTRY_ENVIRONMENT,
        release=config.SENTRY_RELEASE,
        traces_sample_rate=config.SENTRY_TRACES_SAMPLE_RATE,
        integrations=_integrations(enable_fastapi),
        before_send=scrub_event,
        send_default_pii=False,
    )
    sentry_sdk.set_tag("service", service_name)
    sentry_sdk.set_tag("store_backend", config.STORE_BACKEND)
    _enabled = True
    logger.info("error_reporting_enabled service=%s", service_name)
    return True


def report_exception(exc: BaseException, **tags) -> None:
    """Send an exception the API handled itself (store failures) to Sentry."""
    if not _enabled:
        return
    with sentry_sdk.new_scope() as scope:
        for key, value in tags.items():
            scope.set_tag(key, value)
        sentry_sdk.capture_exception(exc)
