"""Exception hierarchy for cachegate.

All exceptions inherit from :class:`CachegateError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`cachegate.exit_codes`.
Library code raises these; the interceptor converts strategy failures into
fallback responses and the CLI entry point in :func:`cachegate.app.main`
turns them into process exit codes.

Subclass hierarchy::

    CachegateError (exit 1)
    +-- InvalidUsageError    (exit 2)
    +-- NotFoundError        (exit 4)
    +-- StoreError           (exit 5)
    +-- NetworkError         (exit 6)
    +-- ClassificationError  (exit 1)
    +-- ConfigError          (exit 1)
"""

from cachegate.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NETWORK_ERROR,
    EXIT_NOT_FOUND,
    EXIT_STORE_ERROR,
)


class CachegateError(Exception):
    """Base exception for all cachegate errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(CachegateError):
    """Raised for invalid CLI arguments or malformed control messages."""

    exit_code = EXIT_INVALID_USAGE


class NotFoundError(CachegateError):
    """Raised when a cache entry is required but absent."""

    exit_code = EXIT_NOT_FOUND


class StoreError(CachegateError):
    """Raised when the persistent cache store fails (I/O, quota, bad generation name)."""

    exit_code = EXIT_STORE_ERROR


class NetworkError(CachegateError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    HTTP error statuses are *not* network errors: a 404 or 500 from the
    origin is a valid response and is returned to the caller as-is.
    """

    exit_code = EXIT_NETWORK_ERROR


class ClassificationError(CachegateError):
    """Reserved for classifier failures.

    :func:`cachegate.classifier.classify` is total, so this is never raised
    by the package itself.
    """


class ConfigError(CachegateError):
    """Raised for configuration problems (invalid JSON, failed validation)."""
