"""Caller identity for FastAPI endpoints.

Authentication happens at the gateway, which forwards the verified identity
as ``X-User-Id``, ``X-User-Type`` and ``X-User-Roles`` headers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Depends, Header, HTTPException, status

from app.domain.ranking.models import UserType


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	user_type: UserType
	roles: Tuple[str, ...] = ()

	def has_role(self, role: str) -> bool:
		return role in self.roles

	@property
	def is_admin(self) -> bool:
		return self.user_type is UserType.ADMIN or self.has_role("admin")


def _parse_roles(raw: Optional[str]) -> Tuple[str, ...]:
	if not raw:
		return ()
	return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_type: Optional[str] = Header(default=None, alias="X-User-Type"),
	x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
) -> AuthenticatedUser:
	"""Resolve the caller from gateway headers."""

	user_id = (x_user_id or "").strip()
	if not user_id:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_identity")
	try:
		user_type = UserType((x_user_type or "").strip().upper())
	except ValueError:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_user_type") from None
	return AuthenticatedUser(id=user_id, user_type=user_type, roles=_parse_roles(x_user_roles))


async def get_admin_user(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
	if user.is_admin:
		return user
	raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_role")

