class StorefrontError(Exception):
    code = "E_INTERNAL"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message


class AuthenticationRequiredError(StorefrontError):
    code = "E_AUTH_REQUIRED"


class ForbiddenError(StorefrontError):
    code = "E_FORBIDDEN"


class NotFoundError(StorefrontError):
    code = "E_NOT_FOUND"


class ConflictError(StorefrontError):
    code = "E_CONFLICT"


class InputValidationError(StorefrontError):
    code = "E_VALIDATION"


class UpstreamFailureError(StorefrontError):
    code = "E_UPSTREAM"


class IntegrityViolationError(StorefrontError):
    code = "E_INTEGRITY"
