"""Role definitions and the fixed capability matrix.

Permissions are a pure lookup: ``permissions_for(role)`` always returns the
same frozen record for a role and nothing mutates the matrix at runtime.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class Role(str, Enum):
    DATA_ENTRY = "data_entry"
    SUPERVISOR = "supervisor"
    STAKEHOLDER = "stakeholder"


# The first release shipped with two roles; old session payloads still carry them.
LEGACY_ROLE_ALIASES = {
    "admin": Role.SUPERVISOR,
    "staff": Role.DATA_ENTRY,
}

ROLE_LABELS = {
    Role.DATA_ENTRY: "Data entry",
    Role.SUPERVISOR: "Supervisor",
    Role.STAKEHOLDER: "Stakeholder",
}

class RolePermissions(BaseModel):
    model_config = {"frozen": True}

    # Inventory
    can_view_inventory: bool = False
    can_create_inventory: bool = False
    can_edit_inventory: bool = False
    can_delete_inventory: bool = False
    can_edit_base_price: bool = False
    can_edit_selling_price: bool = False
    can_view_prices: bool = False

    # Stock operations
    can_create_stock_in: bool = False
    can_create_stock_out: bool = False
    can_edit_after_submit: bool = False
    can_delete_records: bool = False
    can_perform_plate_cutting: bool = False

    # Financial
    can_view_financials: bool = False
    can_view_profit: bool = False
    can_view_analytics: bool = False

    # Admin
    can_manage_users: bool = False
    can_manage_settings: bool = False


PERMISSION_FLAGS = tuple(RolePermissions.model_fields)

ROLE_PERMISSIONS: dict[Role, RolePermissions] = {
    Role.DATA_ENTRY: RolePermissions(
        can_view_inventory=True,
        can_create_inventory=True,
        can_create_stock_in=True,
        can_create_stock_out=True,
    ),
    Role.SUPERVISOR: RolePermissions(
        can_view_inventory=True,
        can_create_inventory=True,
        can_edit_inventory=True,
        can_delete_inventory=True,
        can_edit_base_price=False,  # base price stays with the most trusted role
        can_edit_selling_price=True,
        can_view_prices=True,
        can_create_stock_in=True,
        can_create_stock_out=True,
        can_edit_after_submit=True,
        can_delete_records=True,
        can_perform_plate_cutting=True,
        can_view_financials=True,
        can_view_profit=True,
        can_view_analytics=True,
    ),
    Role.STAKEHOLDER: RolePermissions(
        can_view_inventory=True,
        can_view_prices=True,
        can_view_financials=True,
        can_view_profit=True,
        can_view_analytics=True,
    ),
}


def resolve_role(value: Role | str) -> Role:
    """Return the ``Role`` for a role value or a legacy role name."""

    if isinstance(value, Role):
        return value
    normalized = (value or "").strip().lower()
    if normalized in LEGACY_ROLE_ALIASES:
        return LEGACY_ROLE_ALIASES[normalized]
    try:
        return Role(normalized)
    except ValueError:
        raise ValueError(f"unknown role: {value!r}") from None


def permissions_for(role: Role | str) -> RolePermissions:
    return ROLE_PERMISSIONS[resolve_role(role)]


def has_permission(role: Role | str, permission: str) -> bool:
    if permission not in PERMISSION_FLAGS:
        raise KeyError(f"unknown permission flag: {permission}")
    return getattr(permissions_for(role), permission)


__all__ = [
    "LEGACY_ROLE_ALIASES",
    "PERMISSION_FLAGS",
    "ROLE_LABELS",
    "ROLE_PERMISSIONS",
    "Role",
    "RolePermissions",
    "has_permission",
    "permissions_for",
    "resolve_role",
]
