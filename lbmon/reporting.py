"""Error sink: every error is logged, and sent to Sentry when a DSN is set."""

import logging

import sentry_sdk

logger = logging.getLogger(__name__)


class ErrorReporter:
    """Log errors and forward them to Sentry.

    Safe to share between monitor and probe threads.

    Args:
        dsn: Sentry DSN.  When None, errors are only logged.
        environment: Sentry environment tag.
    """

    def __init__(self, dsn: str | None = None, environment: str | None = None) -> None:
        self.enabled = bool(dsn)
        if self.enabled:
            sentry_sdk.init(dsn=dsn, environment=environment)
            logger.info("Reporting errors to Sentry (environment=%s)", environment)

    def report(self, error: BaseException, **context: object) -> None:
        """Log *error* and capture it in Sentry with *context* as tags."""
        logger.error("error: %s", error)
        if not self.enabled:
            return
        with sentry_sdk.new_scope() as scope:
            for key, value in context.items():
                scope.set_tag(key, str(value))
            sentry_sdk.capture_exception(error)

    def flush(self, timeout: float = 2.0) -> None:
        """Wait up to *timeout* seconds for queued events to be sent."""
        if self.enabled:
            sentry_sdk.flush(timeout=timeout)
