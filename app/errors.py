from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.extra}


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"


class InvalidTransitionError(ValidationError):
    code = "invalid_transition"


class DuplicateOrderIdError(ValidationError):
    code = "duplicate_order_id"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class InsufficientStockError(AppError):
    status_code = 400
    code = "insufficient_stock"

    def __init__(self, available: int, requested: int):
        super().__init__("Insufficient stock", available=available, requested=requested)
        self.available = available
        self.requested = requested


class TransactionError(AppError):
    status_code = 500
    code = "transaction_failed"


class NotificationDeliveryError(AppError):
    code = "notification_failed"


async def _app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": ValidationError.code, "message": "Invalid request body", "details": details},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
