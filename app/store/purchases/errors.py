from app.core.errors import (
    ConflictError,
    InputValidationError,
    IntegrityViolationError,
    NotFoundError,
)
from app.services.payment_gateway import PaymentGatewayError


class AlreadyOwnedError(ConflictError):
    code = "E_ALREADY_OWNED"


class EntitlementClosedError(ConflictError):
    code = "E_ENTITLEMENT_CLOSED"


class AmountMismatchError(InputValidationError):
    code = "E_AMOUNT_MISMATCH"


class PurchaseRecipientMissingError(InputValidationError):
    code = "E_EMAIL_REQUIRED"


class EntitlementNotFoundError(NotFoundError):
    code = "E_ENTITLEMENT_NOT_FOUND"


class PaymentVerificationFailedError(InputValidationError):
    code = "E_PAYMENT_VERIFICATION_FAILED"


class WebhookSignatureError(IntegrityViolationError):
    code = "E_WEBHOOK_SIGNATURE"


class WebhookPayloadError(InputValidationError):
    code = "E_WEBHOOK_PAYLOAD"


__all__ = [
    "AlreadyOwnedError",
    "AmountMismatchError",
    "EntitlementClosedError",
    "EntitlementNotFoundError",
    "PaymentGatewayError",
    "PaymentVerificationFailedError",
    "PurchaseRecipientMissingError",
    "WebhookPayloadError",
    "WebhookSignatureError",
]
