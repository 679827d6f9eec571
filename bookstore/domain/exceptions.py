class DomainException(Exception):
    error_kind = "DomainError"
    status_code = 400

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)


class ValidationError(DomainException):
    error_kind = "ValidationError"
    status_code = 400


class EmptyCartError(ValidationError):
    error_kind = "EmptyCartError"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("Корзина пуста")


class NotFoundError(DomainException):
    error_kind = "NotFoundError"
    status_code = 404


class OrderNotFoundError(NotFoundError):
    pass


class SubscriptionNotFoundError(NotFoundError):
    pass


class PlanNotFoundError(NotFoundError):
    pass


class BookNotFoundError(NotFoundError):
    pass


class AuthenticationError(DomainException):
    error_kind = "AuthenticationError"
    status_code = 401


class ForbiddenError(DomainException):
    error_kind = "ForbiddenError"
    status_code = 403


class StateTransitionError(DomainException):
    error_kind = "StateTransitionError"
    status_code = 409


class CatalogServiceError(DomainException):
    error_kind = "CatalogServiceError"
    status_code = 503


class AuthServiceError(DomainException):
    error_kind = "AuthServiceError"
    status_code = 503


class GatewayError(DomainException):
    error_kind = "GatewayError"
    status_code = 502
    retriable = False


class GatewayConfigError(GatewayError):
    """Нет ключей шлюза. Поднимается только при старте процесса"""
    error_kind = "GatewayConfigError"
    status_code = 500


class GatewayNetworkError(GatewayError):
    error_kind = "GatewayNetworkError"
    status_code = 503
    retriable = True


class GatewayValidationError(GatewayError):
    error_kind = "GatewayValidationError"
    status_code = 502


class PaymentInitiationError(DomainException):
    """Запись сохранена, но платежная ссылка не создана"""

    def __init__(self, reference_id: str, cause: GatewayError):
        self.reference_id = reference_id
        self.cause = cause
        self.error_kind = cause.error_kind
        self.status_code = cause.status_code
        self.retriable = cause.retriable
        if cause.retriable:
            message = f"Не удалось создать платеж, повторите попытку: {cause.message}"
        else:
            message = f"Платежный шлюз отклонил запрос: {cause.message}"
        super().__init__(message)


class DuplicateRecordError(DomainException):
    """Запись с таким ключом уже существует (гонка двух одинаковых запросов)"""
    error_kind = "DuplicateRecordError"
    status_code = 409
