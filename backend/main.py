"""
Main FastAPI application entry point
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.errors import status_code_for
from app.api.routes import admin, compound_prompts, health, metrics, public_api
from app.core.compound_errors import CompoundPromptError
from app.core.config import get_settings
from app.core.logging_config import LoggingConfig
from app.core.metrics import app_info
from app.core.middleware import LoggingContextMiddleware
from app.core.middleware_metrics import MetricsMiddleware

APP_VERSION = "0.1.0"

# Configure logging first
LoggingConfig.configure()

logger = LoggingConfig.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI app"""
    settings = get_settings()
    app_info.info({"name": settings.app_name, "version": APP_VERSION, "environment": settings.app_env})
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode...")

    yield

    logger.info(f"Shutting down {settings.app_name}...")


_settings = get_settings()
app = FastAPI(
    title=_settings.app_name,
    description="Prompt library with compound prompt resolution",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(LoggingContextMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CompoundPromptError)
async def compound_prompt_error_handler(request: Request, exc: CompoundPromptError):
    """Domain errors that escaped a route"""
    logger.warning(
        f"Compound prompt error: {exc.message}",
        extra={"error_code": exc.code, "path": request.url.path, "method": request.method},
    )
    return JSONResponse(status_code=status_code_for(exc), content={"detail": exc.to_dict()})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled errors and answer with a generic 500"""
    logger.error(
        "Unhandled exception",
        exc_info=exc,
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__},
    )


app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(public_api.router)
app.include_router(compound_prompts.router)
app.include_router(compound_prompts.prompts_router)
app.include_router(admin.router)


@app.get("/api")
async def root():
    """Root API endpoint"""
    settings = get_settings()
    return {
        "name": settings.app_name,
        "version": APP_VERSION,
        "status": "running",
        "environment": settings.app_env,
    }


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.app_env == "development",
    )
