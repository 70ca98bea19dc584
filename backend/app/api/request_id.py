"""Request ID helper for endpoints.

Relies on observability middleware binding the request id into the logging
context. Falls back to the id stored on the request state.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from app.obs import logging as obs_logging


def get_request_id(request: Optional[Request] = None, default: str = "unknown") -> str:
	"""Return the current request id if bound, else a default."""

	rid: Optional[str] = obs_logging._REQUEST_ID.get()
	if not rid and request is not None:
		rid = getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id")
	return rid or default
