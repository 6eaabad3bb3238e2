"""HTTP receiver - FastAPI app that extracts baggage from request headers."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from .carrier import decode
from .messages import ProcessRequest, ProcessResponse, utc_now_iso
from .observability import context_fields, log_stage

logger = logging.getLogger(__name__)

NOT_FOUND = {"error": "Not found"}
INTERNAL_ERROR = {"error": "Internal server error"}


def create_app() -> FastAPI:
    """Build the receiver application.

    Routes: ``GET /health`` and ``POST /process``. Anything else answers 404
    and any failure while handling a request answers 500.
    """
    app = FastAPI(title="baggage-relay receiver", docs_url=None, redoc_url=None)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(
        _request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        # Unknown method on a known path is reported like an unknown path.
        if exc.status_code in (404, 405):
            return JSONResponse(NOT_FOUND, status_code=404)
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.error("Error processing request: %s", exc.errors())
        return JSONResponse(INTERNAL_ERROR, status_code=500)

    @app.exception_handler(Exception)
    async def _unhandled(_request: Request, exc: Exception) -> JSONResponse:
        logger.error("Error processing request: %s", exc, exc_info=exc)
        return JSONResponse(INTERNAL_ERROR, status_code=500)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.post("/process", response_model=ProcessResponse)
    async def process(body: ProcessRequest, request: Request) -> ProcessResponse:
        context = decode(dict(request.headers))
        log_stage(
            logger,
            "http_received",
            message_id=body.message_id,
            data=body.data,
            **context_fields(context),
        )
        if not context.baggage:
            logger.warning("No baggage found in request headers")
        for key, value in context.baggage.items():
            logger.info("Baggage %s: %s", key, value)

        return ProcessResponse(
            success=True,
            message_id=body.message_id,
            processed_at=utc_now_iso(),
            baggage_received=dict(context.baggage),
        )

    return app


def serve(
    host: str = "0.0.0.0",  # noqa: S104
    port: int = 3000,
    log_level: str = "info",
) -> None:
    """Run the receiver under uvicorn until interrupted."""
    import uvicorn

    logger.info("API service starting on %s:%d", host, port)
    uvicorn.run(create_app(), host=host, port=port, log_level=log_level.lower())
