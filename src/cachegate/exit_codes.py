"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~cachegate.exceptions.CachegateError` subclass.

Example::

    $ cachegate cache show https://app.example.com/missing.css
    $ echo $?
    4   # EXIT_NOT_FOUND -- no cached entry for that URL
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_NOT_FOUND = 4
"""A cache entry required by the command does not exist."""

EXIT_STORE_ERROR = 5
"""The on-disk cache store could not be read or written."""

EXIT_NETWORK_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""
