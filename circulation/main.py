from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse, Response
from fastapi.openapi.utils import get_openapi
from sqlalchemy import text
from sqlalchemy.orm import Session
import time
import uuid
import logging

from circulation.api.v1.dependencies import get_db
from circulation.api.v1.endpoints import auth, books, dashboard, loans, notifications, requests, users
from circulation.core.config import settings
from circulation.core.errors import CirculationError
from circulation.core.logging import configure_logging, get_logger, request_id_ctx
from circulation.db.session import Base, SessionLocal, engine
from circulation.services.init_admin import ensure_builtin_admin
from circulation.services.scheduler import NotificationScheduler


# Configurar logging global al arrancar el módulo
configure_logging()
request_logger = get_logger("api.request")
logger = get_logger("circulation.app")

app = FastAPI(
    title="Library Circulation API",
    version="1.0.0",
)

# Routers de la API
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(books.router)
app.include_router(requests.router)
app.include_router(loans.router)
app.include_router(notifications.router)
app.include_router(dashboard.router)


@app.exception_handler(CirculationError)
async def circulation_error_handler(request: Request, exc: CirculationError):
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(
        level,
        "circulation_error",
        extra={
            "code": exc.code,
            "detail": exc.detail,
            "status_code": exc.status_code,
            "path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


@app.on_event("startup")
def startup_event():
    if settings.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        ensure_builtin_admin(db)
    finally:
        db.close()

    if settings.NOTIFICATION_SCHEDULER_ENABLED:
        scheduler = NotificationScheduler(
            session_factory=SessionLocal,
            interval_seconds=settings.NOTIFICATION_SWEEP_INTERVAL_SECONDS,
            initial_delay_seconds=settings.NOTIFICATION_SWEEP_INITIAL_DELAY_SECONDS,
        )
        scheduler.start()
        app.state.notification_scheduler = scheduler


@app.on_event("shutdown")
def shutdown_event():
    scheduler = getattr(app.state, "notification_scheduler", None)
    if scheduler is not None:
        scheduler.stop()


@app.middleware("http")
async def add_request_id_and_log(request: Request, call_next):
    """
    Middleware que:
    - Asigna un request_id (si no viene en cabecera).
    - Mide el tiempo de respuesta.
    - Loguea la petición y marca WARNING si es lenta.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    start = time.perf_counter()

    request.state.request_id = request_id
    request_id_ctx.set(request_id)

    try:
        response: Response = await call_next(request)
    except Exception:
        process_time_ms = (time.perf_counter() - start) * 1000
        request_logger.error(
            "unhandled_exception",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": 500,
                "duration_ms": round(process_time_ms, 2),
                "client_host": request.client.host if request.client else None,
            },
            exc_info=True,
        )
        raise

    process_time_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request_id

    # Elegir nivel según si es lenta
    level = logging.INFO
    if process_time_ms > settings.SLOW_REQUEST_THRESHOLD_MS:
        level = logging.WARNING

    request_logger.log(
        level,
        "request_completed",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(process_time_ms, 2),
            "client_host": request.client.host if request.client else None,
        },
    )
    return response


@app.get("/")
def root():
    return {"message": "Library Circulation API running"}


@app.get("/health/db")
def health_db(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}


def custom_openapi():
    """
    Solo definimos el esquema OAuth2 password para que Swagger
    muestre el cuadro de 'Authorize' con username/password.
    """
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title="Library Circulation API",
        version="1.0.0",
        routes=app.routes,
    )

    components = openapi_schema.setdefault("components", {})
    security_schemes = components.setdefault("securitySchemes", {})

    # Debe llamarse igual que el esquema definido con OAuth2PasswordBearer
    security_schemes["OAuth2PasswordBearer"] = {
        "type": "oauth2",
        "flows": {
            "password": {
                "tokenUrl": "/api/v1/auth/login",
                "scopes": {},
            }
        },
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi
