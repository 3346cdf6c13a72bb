from app.core.errors import ForbiddenError, InputValidationError, NotFoundError


class PurchaseRequiredError(ForbiddenError):
    code = "E_PURCHASE_REQUIRED"


class AdminRequiredError(ForbiddenError):
    code = "E_ADMIN_REQUIRED"


class FileMissingError(NotFoundError):
    code = "E_FILE_MISSING"


class AlbumNotStreamableError(InputValidationError):
    code = "E_ALBUM_NOT_STREAMABLE"
