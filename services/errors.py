"""Error taxonomy shared by the file server services and routes.

Route-level error handlers (see ``app.create_app``) map these to HTTP
responses; no handler ever echoes exception detail back to the client.
"""

from __future__ import annotations


class FileServerError(Exception):
    """Base class for expected, boundary-handled failures."""


class PathEscape(FileServerError):
    """A virtual path would resolve outside the configured root."""


class NotFound(FileServerError):
    """A resolved path does not exist."""


class NoSelection(FileServerError):
    """A batch request has nothing left to act on after filtering."""


class Unauthorized(FileServerError):
    """Missing, unknown or expired session on a protected route."""


class IOFailure(FileServerError):
    """Filesystem or stream error during a read or write."""


class AuthFailure(FileServerError):
    """Credential check rejected the login attempt."""


class ConfigError(Exception):
    """Fatal startup configuration problem."""
