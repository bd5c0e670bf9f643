import uuid
import time
import json
import logging
from datetime import datetime, timezone
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gallery.core.config import settings
from gallery.core.errors import EntryError
from gallery.routers import entries, health

def create_app() -> FastAPI:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    app = FastAPI(title="Before/After Gallery API", version="1.0.0")

    logger = logging.getLogger("gallery")

    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)

    allow_origins = [o.strip() for o in str(settings.cors_allow_origins or "").split(",") if o.strip()]
    if "*" in allow_origins:
        raise RuntimeError("CORS_ALLOW_ORIGINS must not include '*' when allow_credentials=true")

    is_prod = (settings.app_env or "").strip().lower() in {"prod", "production"}

    def _request_id(request: Request) -> str | None:
        rid = getattr(getattr(request, "state", None), "request_id", None)
        rid = str(rid or "").strip()
        return rid or None

    def _error_payload(request: Request, error_code: str, error_message: str) -> dict:
        return {
            "ok": False,
            "error_code": error_code,
            "error_message": error_message,
            "request_id": _request_id(request),
        }

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        t0 = time.perf_counter()
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = rid
        status_code: int | None = None
        try:
            origin = (request.headers.get("origin") or "").strip()
            if request.method in {"POST", "PUT", "PATCH", "DELETE"} and origin and origin not in allow_origins:
                response = JSONResponse(status_code=403, content=_error_payload(request, "forbidden", "invalid origin"))
            else:
                response = await call_next(request)
            status_code = int(getattr(response, "status_code", 0) or 0)
        except Exception:
            status_code = 500
            raise
        finally:
            path = getattr(getattr(request, "url", None), "path", "")
            if not path.startswith("/health"):
                logger.info(
                    json.dumps(
                        {
                            "ts": datetime.now(timezone.utc).isoformat(),
                            "rid": rid,
                            "method": request.method,
                            "path": path,
                            "status": status_code,
                            "duration_ms": int((time.perf_counter() - t0) * 1000),
                        },
                        ensure_ascii=False,
                    )
                )
        response.headers["X-Request-ID"] = rid

        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        if is_prod:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response

    @app.exception_handler(EntryError)
    async def entry_error_handler(request: Request, exc: EntryError):
        if exc.status_code >= 500:
            logger.warning("%s: %s (cause: %s)", exc.error_code, exc.message, getattr(exc, "cause", None))
        payload = _error_payload(request, exc.error_code, exc.message)
        missing = getattr(exc, "missing_fields", None)
        if missing:
            payload["missing_fields"] = missing
        return JSONResponse(status_code=int(exc.status_code), content=payload)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        detail = exc.detail
        if isinstance(detail, dict):
            error_code = str(detail.get("error_code") or "http_error")
            error_message = str(detail.get("error_message") or detail.get("detail") or "request failed")
        else:
            error_code = "not_found" if int(exc.status_code) == 404 else "http_error"
            error_message = str(detail or "request failed")

        return JSONResponse(
            status_code=int(exc.status_code),
            content=_error_payload(request, error_code, error_message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        rid = _request_id(request)
        logger.exception("unhandled exception", extra={"rid": rid})
        return JSONResponse(
            status_code=500,
            content=_error_payload(request, "internal_error", "internal server error"),
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"] if not is_prod else ["content-type", "x-request-id"],
    )

    app.include_router(health.router)
    app.include_router(entries.router)

    return app

app = create_app()
