from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from intake.api.routes import router
from intake.api.admin_routes import router as admin_router
from intake.backend.client import DEFAULT_ERROR_MESSAGE, BackendError
from intake.core import messages
import intake.observability.metrics as metrics
from intake.observability.logging import log
from intake.settings import settings, csv_list
from intake.store.redis_conn import close_redis
from intake.utils.lock import SessionBusyError


@asynccontextmanager
async def lifespan(app: FastAPI):
    log(
        event="boot",
        backend=settings.BACKEND_BASE_URL,
        amountRange=[settings.AMOUNT_MIN, settings.AMOUNT_MAX],
        terms=csv_list(settings.ALLOWED_TERMS),
        otpCooldownSec=settings.OTP_RESEND_COOLDOWN_SEC,
    )
    yield
    await close_redis()


app = FastAPI(title="Application Intake API", lifespan=lifespan)

# Restricted in prod via env.
origins = csv_list(settings.CORS_ORIGINS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(admin_router)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.exception_handler(SessionBusyError)
async def session_busy_handler(request: Request, exc: SessionBusyError):
    await metrics.incr(metrics.LOCK_CONTENDED)
    return JSONResponse(status_code=409, content={"detail": messages.BUSY, "reason": "busy"})


@app.exception_handler(BackendError)
async def backend_error_handler(request: Request, exc: BackendError):
    # Only session start lets a backend failure escape; transitions fold it into state
    log(event="backend_error_unhandled", path=request.url.path, status=exc.status, error=exc.message[:300])
    return JSONResponse(
        status_code=502,
        content={"detail": exc.message or DEFAULT_ERROR_MESSAGE, "backendStatus": exc.status},
    )


@app.exception_handler(Exception)
async def universal_exception_handler(request: Request, exc: Exception):
    log(event="unhandled_exception", path=request.url.path, errorType=type(exc).__name__, error=str(exc)[:300])
    return JSONResponse(status_code=500, content={"detail": DEFAULT_ERROR_MESSAGE})
