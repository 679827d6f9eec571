from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from bookstore.config import settings
from bookstore.database import engine, AsyncSessionLocal, create_tables
from bookstore.domain.exceptions import DomainException, PaymentInitiationError
from bookstore.application.subscriptions import SeedPlansUseCase
from bookstore.infrastructure.unit_of_work import UnitOfWork
from bookstore.infrastructure.payment_gateway import RazorpayPaymentGateway
from bookstore.presentation.api import router
from bookstore.presentation.schemas import ErrorResponse

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    # 1. Платежный шлюз: без ключей процесс не стартует
    app.state.payment_gateway = RazorpayPaymentGateway(
        settings.RAZORPAY_KEY_ID,
        settings.RAZORPAY_KEY_SECRET,
        base_url=settings.RAZORPAY_BASE_URL,
        timeout=settings.GATEWAY_TIMEOUT
    )
    logger.info("Платежный шлюз настроен")

    # 2. Таблицы и справочник тарифов
    await create_tables()
    await SeedPlansUseCase(UnitOfWork(AsyncSessionLocal))()
    logger.info("База данных готова")

    yield

    logger.info("Приложение останавливается...")
    await engine.dispose()


app = FastAPI(
    title="Bookstore Checkout Service",
    description="Корзина, заказы и оплата через платежные ссылки",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException):
    body = ErrorResponse(error_kind=exc.error_kind, message=exc.message)
    if isinstance(exc, PaymentInitiationError):
        body.reference = exc.reference_id
        body.retriable = exc.retriable
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.error_kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(by_alias=True, exclude_none=True))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(part) for part in error["loc"][1:]) for error in exc.errors()]
    body = ErrorResponse(error_kind="ValidationError", message=f"Некорректные поля запроса: {', '.join(fields)}")
    return JSONResponse(status_code=400, content=body.model_dump(by_alias=True, exclude_none=True))


@app.get("/")
async def root():
    return {"message": "Bookstore checkout service работает"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
