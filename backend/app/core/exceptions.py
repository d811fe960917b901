class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(AppError):
    """Raised when request input is malformed; no work has been performed."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class UnauthenticatedError(AppError):
    """Raised when no valid session accompanies the request."""
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status_code=401)

class ForbiddenError(AppError):
    """Raised when a session exists but its role fails a prefix or capability rule."""
    def __init__(self, message: str = "Access denied", rule: str | None = None):
        super().__init__(message, status_code=403)
        self.rule = rule

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class RateLimitedError(AppError):
    def __init__(self, message: str, retry_after: int):
        super().__init__(message, status_code=429, details={"retry_after": retry_after})
        self.retry_after = retry_after

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)

class ConflictError(AppError):
    """Raised when a write would double-book a teacher, a location or a rule occurrence."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)
