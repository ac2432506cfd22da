# rowverify/errors.py
"""
Error taxonomy shared by services and routers.
Each error carries the HTTP status the API layer answers with.
"""


class VerificationError(Exception):
    """Base class for every error the verification core raises on purpose."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(VerificationError):
    status_code = 401


class PermissionDenied(VerificationError):
    status_code = 403


class InvalidArgument(VerificationError):
    status_code = 400


class NotFound(VerificationError):
    status_code = 404


class StoreUnavailable(VerificationError):
    """Entry/user store could not be reached. Never read as a passing check."""
    status_code = 503


class InternalError(VerificationError):
    status_code = 500
