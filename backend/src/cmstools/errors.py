"""Error taxonomy shared by the services and the HTTP layer.

Each error carries the HTTP-equivalent status code the calling layer maps
it to. Core read paths (metadata, permissions) do not raise these; they
return None or fail-closed values and the data service translates.
"""


class CmsError(Exception):
    """Base class for caller-visible CMS failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(CmsError):
    """Table, connection or row does not exist (or is disabled)."""

    status_code = 404


class ForbiddenError(CmsError):
    """Effective permission does not grant the requested action."""

    status_code = 403


class BadRequestError(CmsError):
    """Administrator misconfiguration or invalid input."""

    status_code = 400


class ConflictError(CmsError):
    """Constraint violation reported by the target database."""

    status_code = 409


class TargetDatabaseError(CmsError):
    """Any other failure reported by the target database driver."""

    status_code = 502


class ConfigurationError(Exception):
    """Missing or invalid startup configuration. Fatal."""

    pass
