from __future__ import annotations

from typing import Any

from pydantic import ValidationError


class SurgiStockError(Exception):
    """Base class for every failure a command can report to its caller."""

    code = "error"

    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class PermissionDenied(SurgiStockError):
    code = "permission_denied"

    def __init__(self, message: str, *, permission: str | None = None, role: str | None = None) -> None:
        details = {"permission": permission, "role": role} if permission else None
        super().__init__(message, details=details)
        self.permission = permission
        self.role = role


class ValidationFailed(SurgiStockError):
    code = "validation_failed"

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "ValidationFailed":
        errors = exc.errors(include_url=False, include_context=False)
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        message = f"{field}: {first.get('msg', 'invalid value')}"
        return cls(message, details={"errors": errors})


class NotFound(SurgiStockError):
    code = "not_found"

    def __init__(self, resource: str, identifier: Any) -> None:
        super().__init__(
            f"{resource} {identifier} not found",
            details={"resource": resource, "id": identifier},
        )
        self.resource = resource
        self.identifier = identifier


def parse_payload(model, payload):
    """Coerce a dict (or an existing model instance) into ``model``.

    Pydantic errors surface as ``ValidationFailed`` so callers only ever see
    the domain error taxonomy.
    """

    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ValidationFailed.from_pydantic(exc) from exc


__all__ = ["NotFound", "PermissionDenied", "SurgiStockError", "ValidationFailed", "parse_payload"]
