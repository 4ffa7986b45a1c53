"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from src.api.routers import queries
from src.core.errors import QueryError
from src.core.logging import get_logger, request_secrets, scrub
from src.core.utils import cleanup_header_value

logger = get_logger(__name__)

app = FastAPI(
    title="Run Query",
    version="0.1.0",
    description="Named, parameterized BigQuery analytics queries over HTTP",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def _error_response(message: str, status_code: int, request: Request) -> PlainTextResponse:
    domainkey = getattr(request.state, "domainkey", None)
    safe = scrub(message, (domainkey,) if domainkey else ())
    return PlainTextResponse(
        safe,
        status_code=status_code,
        headers={"x-error": cleanup_header_value(safe)},
    )


@app.exception_handler(QueryError)
async def query_error_handler(request: Request, exc: QueryError) -> PlainTextResponse:
    return _error_response(exc.message, exc.status_code, request)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> PlainTextResponse:
    with request_secrets(getattr(request.state, "domainkey", None)):
        logger.exception("Unhandled error for %s", request.url.path)
    return _error_response("Internal server error", 500, request)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(queries.router, tags=["Queries"])


if __name__ == "__main__":
    import uvicorn

    from src.core.config import get_settings

    uvicorn.run(app, host="0.0.0.0", port=get_settings().api_port)
