from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from .errors import PermissionDenied
from .logging import actor_ctx_var
from .roles import ROLE_LABELS, Role, RolePermissions, permissions_for, resolve_role

logger = logging.getLogger(__name__)


class SessionContext:
    """The signed-in actor, passed explicitly to every command."""

    def __init__(self, *, user_id: str, role: Role | str, display_name: str | None = None) -> None:
        self.user_id = user_id
        self.role = resolve_role(role)
        self.display_name = display_name
        self.permissions: RolePermissions = permissions_for(self.role)

    def __repr__(self) -> str:
        return f"SessionContext(user_id={self.user_id!r}, role={self.role.value!r})"

    @property
    def principal(self) -> str:
        return f"{self.user_id}:{self.role.value}"

    def can(self, permission: str) -> bool:
        return bool(getattr(self.permissions, permission))

    def require(self, permission: str, action: str | None = None) -> None:
        """Raise ``PermissionDenied`` unless the role holds ``permission``."""

        if self.can(permission):
            return
        reason = f"{ROLE_LABELS[self.role]} may not {action or permission}"
        logger.warning(
            "permission.denied",
            extra={"extra_data": {"permission": permission, "role": self.role.value}},
        )
        raise PermissionDenied(reason, permission=permission, role=self.role.value)

    @contextmanager
    def activate(self) -> Iterator["SessionContext"]:
        token = actor_ctx_var.set(self.principal)
        try:
            yield self
        finally:
            actor_ctx_var.reset(token)


__all__ = ["SessionContext"]
