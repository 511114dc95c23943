"""Numeric process exit codes for the ``precache`` command.

Each constant maps to an error category and is referenced by the
corresponding :class:`~precache.exceptions.PrecacheError` subclass, so
deploy scripts can tell a failed install from an unreachable origin without
parsing stderr.

Example::

    $ precache install
    $ echo $?
    3   # EXIT_INSTALL_FAILURE -- a static asset could not be fetched
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or in the wrong lifecycle phase."""

EXIT_INSTALL_FAILURE = 3
"""A static asset failed to download during install."""

EXIT_STORE_FAILURE = 4
"""The local cache store could not be opened, read, or written."""

EXIT_NETWORK_FAILURE = 5
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_MANIFEST_ERROR = 6
"""The static asset manifest could not be parsed or validated."""
