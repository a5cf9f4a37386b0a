from __future__ import annotations

from typing import NamedTuple


class VariantKey(NamedTuple):
    """Identity of a catalog entry within its category.

    Two items with equal keys are the same physical product; plate cutting
    merges into an existing item with a matching key instead of creating one.
    """

    category: str
    material: str | None = None
    diameter: str | None = None
    length: str | None = None

    @classmethod
    def of(cls, item) -> "VariantKey":
        return cls(item.category, item.material, item.diameter, item.length)

    def with_length(self, length: str) -> "VariantKey":
        return self._replace(length=length)
