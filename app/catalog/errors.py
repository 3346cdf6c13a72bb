from app.core.errors import InputValidationError, NotFoundError


class AssetNotFoundError(NotFoundError):
    code = "E_ASSET_NOT_FOUND"


class UploadValidationError(InputValidationError):
    code = "E_UPLOAD_INVALID"


class UnsupportedFileTypeError(UploadValidationError):
    code = "E_UNSUPPORTED_FILE_TYPE"


class FileTooLargeError(UploadValidationError):
    code = "E_FILE_TOO_LARGE"


class AssetKindMismatchError(InputValidationError):
    code = "E_ASSET_KIND_MISMATCH"
