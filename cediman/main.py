# cediman/main.py

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
from dotenv import load_dotenv
from contextlib import asynccontextmanager

from cediman.config import settings
from cediman.errors import OrderServiceError
from cediman.utils.log import Log
from cediman.utils.database import init_db, dispose_db
from cediman.middleware.db_middleware import DBSessionMiddleware
from cediman.services.paystack import PaystackGateway
from cediman.services.notifications import SendGridEmail, FrogWigalSms

import os
import multiprocessing

# --- загрузка переменных окружения ---
load_dotenv()

# --- sync логгер для раннего старта ---
boot_log = Log(settings.LOG_DIR, settings.LOG_PRINT)
if os.environ.get("RUN_MAIN") == "true" or multiprocessing.current_process().name == "MainProcess":
    boot_log.log_info_sync(target="startup", message="Импорты main.py выполнены")


# ────────────── Lifespan ──────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    boot_log.log_info_sync(target="startup", message="lifespan: startup начат")

    await init_db(boot_log)
    boot_log.log_info_sync(target="startup", message="База инициализирована")

    app.state.settings = settings
    app.state.log = Log(settings.LOG_DIR, settings.LOG_PRINT)
    await app.state.log.log_info(target="startup", message="Async Log инициализирован")

    # Внешние клиенты: один httpx-клиент на провайдера на всё время жизни приложения
    app.state.gateway = PaystackGateway(
        settings.PAYSTACK_SECRET_KEY,
        base_url=settings.PAYSTACK_BASE_URL,
        currency=settings.PAYSTACK_CURRENCY,
        timeout=settings.PAYSTACK_TIMEOUT,
        callback_url=f"{settings.APP_URL}/checkout/callback",
        log=app.state.log,
    )
    app.state.email_provider = SendGridEmail(
        settings.SENDGRID_API_KEY,
        settings.SENDGRID_FROM_EMAIL,
        settings.SENDGRID_FROM_NAME,
    )
    app.state.sms_provider = FrogWigalSms(
        settings.FROGWIGAL_API_KEY,
        settings.FROGWIGAL_USERNAME,
        settings.FROGWIGAL_SENDER_ID,
        api_url=settings.FROGWIGAL_SMS_API_URL,
    )
    if not app.state.gateway.configured:
        await app.state.log.log_warning("startup", "PAYSTACK_SECRET_KEY не задан, платежи недоступны")

    yield

    # shutdown
    await app.state.log.log_info(target="shutdown", message="Остановка приложения")
    for client in (app.state.gateway, app.state.email_provider, app.state.sms_provider):
        await client.aclose()
    await app.state.log.shutdown()
    await dispose_db()
    boot_log.log_info_sync(target="shutdown", message="Log корректно завершён")


# ────────────── Создаём FastAPI приложение ──────────────
app = FastAPI(title="Cediman Orders API", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# DB middleware для request.state.db
app.add_middleware(DBSessionMiddleware)


# ────────────── Обработчики ошибок ──────────────
@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError):
    content = {"success": False, "error": exc.message}
    if exc.details is not None:
        content["details"] = jsonable_encoder(exc.details)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    await request.app.state.log.log_error("http", f"Необработанная ошибка: {exc}", {"path": request.url.path})
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


@app.get("/")
def read_root():
    return {"message": "Cediman Orders API"}


# ────────────── Подключение роутов ──────────────
from cediman.routes import admin, auth, notifications, orders, paystack

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(paystack.router, prefix="/paystack", tags=["paystack"])
app.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])

# ────────────── Запуск uvicorn ──────────────
if __name__ == "__main__":
    boot_log.log_info_sync(target="startup", message="Запуск uvicorn.run")
    uvicorn.run(
        "cediman.main:app",
        host="127.0.0.1",
        port=8000,
        log_level="info",
        reload=True
    )
