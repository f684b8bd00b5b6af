from dotenv import load_dotenv
import os

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(BASE_DIR, ".env"))

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import HTTP_400_BAD_REQUEST

from app.core.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# ───────────────── ROUTER IMPORTS ─────────────────
from app.routes.quizzes import router as quizzes_router
from app.routes.lessons import router as lessons_router
from app.routes.certificates import router as certificates_router
from app.routes.certificate_templates import router as certificate_templates_router
from app.routes.public_verify import router as public_verify_router

app = FastAPI(
    title=f"{settings.COMPANY_NAME} API",
    description="Courses, quizzes and verifiable certificates",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

# ───────── SAFE VALIDATION HANDLER ─────────

def _sanitize(obj):
    if isinstance(obj, (bytes, bytearray)):
        return f"<bytes:{len(obj)}>"
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items() if k != "ctx"}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(v) for v in obj]
    return obj


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # malformed input is a client error like any other ValidationError
    safe_errors = _sanitize(exc.errors())
    return JSONResponse(
        status_code=HTTP_400_BAD_REQUEST,
        content={"detail": safe_errors},
    )

# ───────────────── CORS ─────────────────

origins = settings.origins_list or [
    "http://localhost:3000",
    "http://localhost:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ───────────────── ROUTES ─────────────────

app.include_router(quizzes_router, prefix="/api")
app.include_router(lessons_router, prefix="/api")
app.include_router(certificates_router, prefix="/api")
app.include_router(certificate_templates_router, prefix="/api")

# Human-facing verify page; the QR code points here
app.include_router(public_verify_router)

# ───────────────── HEALTH ─────────────────

@app.get("/", tags=["Health"])
async def root():
    return {
        "status": "ok",
        "app": f"{settings.COMPANY_NAME} API",
        "env": settings.APP_ENV,
    }


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "healthy"}
