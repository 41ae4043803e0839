"""Error taxonomy for convochat; each class carries the HTTP status it maps to."""


class ConvochatError(Exception):
    """Base exception for convochat"""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class BadRequest(ConvochatError):
    """Missing or unusable request input"""
    status_code = 400


class InvalidCredentials(ConvochatError):
    """Unknown email or wrong password"""
    status_code = 400

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class InvalidToken(ConvochatError):
    """Password-reset token failed verification"""
    status_code = 400

    def __init__(self, message: str = "Invalid Token"):
        super().__init__(message)


class Conflict(ConvochatError):
    """Duplicate email on signup"""
    status_code = 400

    def __init__(self, message: str = "Email exists"):
        super().__init__(message)


class Unauthorized(ConvochatError):
    """Missing or invalid bearer credential"""
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFound(ConvochatError):
    """Resource or account does not exist (or is not visible to the caller)"""
    status_code = 404


class UpstreamError(ConvochatError):
    """Failure of the AI service, identity verifier or mail transport"""
    status_code = 500
