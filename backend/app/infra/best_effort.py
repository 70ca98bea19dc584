"""Wrapper for side effects whose failure must never reach the caller."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Mapping, Optional

from app.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


async def best_effort(
	action: str,
	awaitable: Awaitable[Any],
	*,
	extra: Optional[Mapping[str, Any]] = None,
) -> bool:
	"""Await ``awaitable``; failures are logged and counted, never raised.

	Returns True when the side effect completed.
	"""

	try:
		await awaitable
	except Exception:  # noqa: BLE001 - tracking writes are best effort
		obs_metrics.inc_best_effort_failure(action)
		logger.warning(
			"best_effort.failed",
			exc_info=True,
			extra={"action": action, **dict(extra or {})},
		)
		return False
	return True


__all__ = ["best_effort"]
