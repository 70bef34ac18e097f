# backend/services/errors.py
# Typed failures raised by the checkout core. Routes never catch these;
# main.py renders them as {"success": false, "error": kind, "message": ...}.


class DomainError(Exception):
    kind = "domain_error"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


# --- Bad input (4xx) ---
class ValidationError(DomainError):
    kind = "validation_error"
    status_code = 422


class InvalidInputError(ValidationError):
    kind = "invalid_input"


# --- Missing entities ---
class NotFoundError(DomainError):
    kind = "not_found"
    status_code = 404


class ProductNotFoundError(NotFoundError):
    kind = "product_not_found"


class SkuNotFoundError(NotFoundError):
    kind = "sku_not_found"


class OrderNotFoundError(NotFoundError):
    kind = "order_not_found"


class OfferNotFoundError(NotFoundError):
    kind = "offer_not_found"


class ReturnNotFoundError(NotFoundError):
    kind = "return_not_found"


# --- State conflicts ---
class ConflictError(DomainError):
    kind = "conflict"
    status_code = 409


class InsufficientStockError(ConflictError):
    kind = "insufficient_stock"


class OfferExpiredError(ConflictError):
    kind = "offer_expired"


class OfferNotStartedError(ConflictError):
    kind = "offer_not_started"


class OfferExhaustedError(ConflictError):
    kind = "offer_exhausted"


class MinOrderNotMetError(ConflictError):
    kind = "min_order_not_met"


class InvalidTransitionError(ConflictError):
    kind = "invalid_transition"


class PaymentPolicyError(ConflictError):
    kind = "payment_policy_violation"


class ReturnWindowExpiredError(ConflictError):
    kind = "return_window_expired"


class ReturnNotAllowedError(ConflictError):
    kind = "return_not_allowed"


class DuplicateReturnClaimError(ConflictError):
    kind = "duplicate_return_claim"


# --- Infrastructure (retryable) ---
class TransactionFailure(DomainError):
    kind = "transaction_failure"
    status_code = 503


class TransactionTimeoutError(TransactionFailure):
    kind = "transaction_timeout"


# --- Downstream payment/shipping calls ---
class IntegrationError(DomainError):
    kind = "integration_error"
    status_code = 502
