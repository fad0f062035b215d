"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from cbt.config import settings
from cbt.api import attempts_router, exams_router, health_router
from cbt.api.deps import get_registry
from cbt.core.errors import ExamError
from cbt.schemas.common import ErrorResponse

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s  %(name)-25s  %(levelname)-8s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "CBT exam backend starting (env=%s, scoring=%s)",
        settings.ENV,
        settings.SCORING_STRATEGY,
    )
    yield
    # Stop every attempt timer so none fires after shutdown
    await get_registry().close_all()
    logger.info("CBT exam backend shut down")


app = FastAPI(
    title="CBT Exam API",
    description="Timed online exams: attempt lifecycle and auto-scoring",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Middleware ─────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

# ── Error handling ────────────────────────────────────────────────────────────


@app.exception_handler(ExamError)
async def exam_error_handler(request: Request, exc: ExamError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    body = ErrorResponse(error_code=exc.error_code, message=exc.message, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


# ── Routers ───────────────────────────────────────────────────────────────────

app.include_router(health_router, tags=["Health"])
app.include_router(exams_router, prefix="/api/exams", tags=["Exams"])
app.include_router(attempts_router, prefix="/api/attempts", tags=["Attempts"])


@app.get("/")
async def root():
    return {
        "name": "CBT Exam API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cbt.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
