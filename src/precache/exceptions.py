"""Exception hierarchy for precache.

All exceptions inherit from :class:`PrecacheError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`precache.exit_codes`.
The top-level error handler in :func:`precache.app.main` catches
``PrecacheError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    PrecacheError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- InstallFailure      (exit 3)
    +-- StoreFailure        (exit 4)
    +-- NetworkFailure      (exit 5)
    +-- ManifestError       (exit 6)
    +-- ConfigError         (exit 1)

Only :class:`InstallFailure` is expected to reach the caller during normal
operation.  :class:`StoreFailure` and :class:`NetworkFailure` are recovered
inside the fetch interceptor (cache miss, skipped write, fallback page).
"""

from precache.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INSTALL_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_MANIFEST_ERROR,
    EXIT_NETWORK_FAILURE,
    EXIT_STORE_FAILURE,
)


class PrecacheError(Exception):
    """Base exception for all precache errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`precache.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(PrecacheError):
    """Raised for invalid arguments or an event delivered in the wrong lifecycle phase."""

    exit_code = EXIT_INVALID_USAGE


class InstallFailure(PrecacheError):
    """Raised when any static asset fails to download during install.

    Install is never retried.  The worker that failed becomes redundant and
    the previously active version keeps serving.
    """

    exit_code = EXIT_INSTALL_FAILURE


class StoreFailure(PrecacheError):
    """Raised when a namespace cannot be opened, read, written, or deleted."""

    exit_code = EXIT_STORE_FAILURE


class NetworkFailure(PrecacheError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused)."""

    exit_code = EXIT_NETWORK_FAILURE


class ManifestError(PrecacheError):
    """Raised when the static asset manifest cannot be loaded or fails validation."""

    exit_code = EXIT_MANIFEST_ERROR


class ConfigError(PrecacheError):
    """Raised for configuration problems (missing origin, invalid JSON)."""

    exit_code = EXIT_GENERIC_FAILURE
