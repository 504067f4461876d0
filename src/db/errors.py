# exceptions raised by the workflow functions in db.crud


class ValidationError(ValueError):
    """Form input is missing or invalid. Nothing was written."""


class AuthorizationError(PermissionError):
    """The actor may not perform the action, or the confirmation password was wrong."""
