"""HTTP surface: the processing endpoint and a health probe."""

import json
import logging
import math
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from . import __version__
from .config import Settings
from .constants import ALLOWED_HEADERS, ALLOWED_METHODS, CORS_MAX_AGE
from .database import DatabaseManager
from .engine import ReleaseEngine
from .errors import RateLimitExceededError, StoreUnavailableError, UnauthorizedError
from .schemas import ErrorResponse, ProcessRequest
from .security import SECURITY_HEADERS, extract_bearer_token, get_client_ip

logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, headers: Optional[dict] = None, retry_after: Optional[int] = None):
    body = ErrorResponse(error=error, retry_after=retry_after).model_dump(by_alias=True, exclude_none=True)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def _parse_process_request(request: Request) -> ProcessRequest:
    raw = await request.body()
    if not raw.strip():
        return ProcessRequest()
    try:
        payload = json.loads(raw)
    except ValueError:
        # Unparseable bodies are treated as an empty trigger
        logger.warning("Ignoring malformed JSON body on /process")
        return ProcessRequest()
    if not isinstance(payload, dict):
        return ProcessRequest()
    return ProcessRequest.model_validate(payload)


def create_app(
    engine: ReleaseEngine,
    settings: Optional[Settings] = None,
    db_manager: Optional[DatabaseManager] = None,
) -> FastAPI:
    """Build the FastAPI application around a wired engine.

    Args:
        engine: Release engine handling each trigger
        settings: Runtime settings (CORS allow-list)
        db_manager: Optional database manager probed by ``/health``
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await engine.aclose()
        if db_manager is not None:
            await db_manager.close()

    app = FastAPI(title="legacy-release", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=ALLOWED_METHODS,
        allow_headers=ALLOWED_HEADERS,
        max_age=CORS_MAX_AGE,
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    @app.post("/process")
    async def process(request: Request):
        caller_key = get_client_ip(
            request.headers,
            fallback=request.client.host if request.client else None,
            trust_proxy_headers=settings.trust_proxy_headers,
        )
        try:
            trigger = await _parse_process_request(request)
        except ValidationError as e:
            return _error(400, f"Invalid request body: {e.errors()[0]['msg']}")

        credential = extract_bearer_token(request.headers.get("authorization"))

        try:
            result = await engine.process(trigger, caller_key=caller_key, credential=credential)
        except RateLimitExceededError as e:
            retry_after = max(1, math.ceil(e.retry_after))
            logger.warning(f"Rate limit exceeded for {caller_key}")
            return _error(
                429,
                "Rate limit exceeded. Please try again later.",
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(e.limit),
                    "X-RateLimit-Remaining": "0",
                },
                retry_after=retry_after,
            )
        except UnauthorizedError as e:
            return _error(401, str(e))
        except StoreUnavailableError as e:
            logger.error(f"Release pass aborted: {e}")
            return _error(500, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error processing release trigger: {e}")
            return _error(500, str(e) or "Internal server error")

        remaining = engine.rate_limiter.remaining(caller_key)
        return JSONResponse(
            status_code=200,
            content=result.model_dump(mode="json", by_alias=True),
            headers={
                "X-RateLimit-Limit": str(engine.rate_limiter.max_requests),
                "X-RateLimit-Remaining": str(remaining),
            },
        )

    @app.get("/health")
    async def health():
        database_ok = False
        if db_manager is not None:
            database_ok = await db_manager.health_check()
        status = "ok" if database_ok or db_manager is None else "degraded"
        return {"status": status, "database": database_ok}

    return app
