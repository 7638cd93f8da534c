"""FastAPI application factory for the federated tables backend."""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from federated_tables_backend import __version__
from federated_tables_backend.app.api.router import api_router
from federated_tables_backend.app.core.config import FederatedTablesSettings, get_settings


def _configure_logging(settings: FederatedTablesSettings) -> None:
    """Configure application logging destinations."""

    log_file = settings.data_dir.logs / "backend.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
        force=True,
    )


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""

    settings = get_settings()

    _configure_logging(settings)

    app = FastAPI(
        title="Federated Tables API",
        version=__version__,
    )

    request_logger = logging.getLogger("federated_tables_backend.http")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.time()
        response = None
        try:
            response = await call_next(request)
        except Exception:
            request_logger.exception("request_failed method=%s path=%s", request.method, request.url.path)
            raise
        finally:
            duration_ms = int((time.time() - start) * 1000)
            request_logger.info(
                "request method=%s path=%s status=%s duration_ms=%s",
                request.method,
                request.url.path,
                getattr(response, "status_code", "ERR"),
                duration_ms,
            )
        return response

    @app.get("/health", tags=["health"], summary="Health check")
    def health() -> dict[str, str]:
        """Return a simple status payload for readiness checks."""

        return {
            "status": "ok",
            "version": __version__,
        }

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Request input may carry credentials; only locations and messages are reported.
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
            for error in exc.errors()
        )
        return JSONResponse(
            status_code=422,
            content={
                "detail": {
                    "error_code": "invalid_parameter_format",
                    "message": f"Invalid request: {problems}",
                }
            },
        )

    app.include_router(api_router)

    return app


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    uvicorn.run("federated_tables_backend.app.main:app", host="127.0.0.1", port=8000)


# ASGI entrypoint for uvicorn / hypercorn
app = create_app()
