"""
Error kinds shared by the flows, the store adapters and the API layer.

Services raise these; ``ownurvoice.main`` turns them into the
``{"success": false, "message": ...}`` envelope.
"""

from typing import Any, Dict


class OwnUrVoiceError(Exception):
    """Base exception for all OwnUrVoice errors"""

    status_code = 500

    def __init__(self, message: str, code: str = "INTERNAL_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
        }


class ValidationError(OwnUrVoiceError):
    """Missing or malformed input"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, code="VALIDATION_ERROR")


class AuthError(OwnUrVoiceError):
    """Bad credentials or token"""

    status_code = 401

    def __init__(self, message: str = "Invalid username or password"):
        super().__init__(message, code="AUTH_FAILED")


class IdentityError(OwnUrVoiceError):
    """Identity provider rejected the request or could not be reached"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, code="IDENTITY_ERROR")


class StoreError(OwnUrVoiceError):
    """Store failure, surfaced verbatim"""

    status_code = 500

    def __init__(self, message: str, code: str = "STORE_ERROR"):
        super().__init__(message, code=code)


class NotFoundError(StoreError):
    status_code = 404

    def __init__(self, message: str):
        super().__init__(message, code="NOT_FOUND")


class PermissionDeniedError(OwnUrVoiceError):
    """Authenticated, but the role or ownership check failed"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="FORBIDDEN")
