"""Global error handlers rendering the error envelope with the request id."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.request_id import get_request_id
from app.domain.ranking.errors import RankingError

logger = logging.getLogger(__name__)


def error_payload(request: Request, code: str, message: str, **extra: Any) -> dict[str, Any]:
	payload: dict[str, Any] = {
		"success": False,
		"error": {"code": code, "message": message, **extra},
		"request_id": get_request_id(request),
		"timestamp": datetime.now(timezone.utc).isoformat(),
	}
	return payload


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(RankingError)
	async def ranking_exc_handler(request: Request, exc: RankingError):  # type: ignore[override]
		if exc.status_code >= 500:
			logger.warning("ranking_error", extra={"detail": exc.detail, "status": exc.status_code})
		payload = error_payload(request, exc.detail.upper(), exc.detail)
		return JSONResponse(status_code=exc.status_code, content=payload)

	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		detail = str(exc.detail)
		payload = error_payload(request, detail.upper().replace(" ", "_"), detail)
		return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		errors = [
			{"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg"), "type": err.get("type")}
			for err in exc.errors()
		]
		payload = error_payload(request, "VALIDATION_ERROR", "validation_error", details=errors)
		return JSONResponse(status_code=422, content=payload)
