# Overview: Versioned, immutable product snapshot stored on historical order lines.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping

from shopadmin.time_utils import to_utc_z


SNAPSHOT_SCHEMA_VERSION = 1


class SnapshotFormatError(ValueError):
    """Stored snapshot document cannot be read."""


def freeze(value: Any) -> Any:
    """Read-only deep copy of a JSON-like value: dicts become mapping proxies, lists tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Plain dict/list copy of a frozen value, ready for JSON."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class CategoryLabel:
    """Category as it was named when the snapshot was taken."""
    id: int
    name: str
    slug: str
    path: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "path": list(self.path),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CategoryLabel":
        return cls(
            id=data["id"],
            name=data["name"],
            slug=data["slug"],
            path=tuple(data.get("path") or ()),
        )


@dataclass(frozen=True)
class ProductSnapshot:
    """
    Everything an order line needs to render the product it was sold as.

    Never rebuilt from the live product: once captured, the snapshot is the
    historical truth even if the product is renamed, re-priced, moved to
    another category or deleted.
    """
    product_id: int
    name: str
    slug: str
    description: str | None
    unit_price_cents: int | None
    attributes: Mapping[str, Any]
    category: CategoryLabel | None
    captured_at: str
    schema_version: int = SNAPSHOT_SCHEMA_VERSION

    def __post_init__(self):
        # Nested lists and dicts are frozen too; to_dict hands out fresh copies.
        object.__setattr__(self, "attributes", freeze(dict(self.attributes)))

    def to_dict(self) -> dict:
        return {
            "schema_version": self.schema_version,
            "product_id": self.product_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "unit_price_cents": self.unit_price_cents,
            "attributes": thaw(self.attributes),
            "category": self.category.to_dict() if self.category else None,
            "captured_at": self.captured_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProductSnapshot":
        if not isinstance(data, Mapping):
            raise SnapshotFormatError("snapshot must be an object")

        version = data.get("schema_version")
        if version != SNAPSHOT_SCHEMA_VERSION:
            raise SnapshotFormatError(f"Unsupported snapshot schema_version: {version!r}")

        try:
            category = data.get("category")
            return cls(
                product_id=data["product_id"],
                name=data["name"],
                slug=data["slug"],
                description=data.get("description"),
                unit_price_cents=data.get("unit_price_cents"),
                attributes=data.get("attributes") or {},
                category=CategoryLabel.from_dict(category) if category else None,
                captured_at=data["captured_at"],
                schema_version=version,
            )
        except KeyError as exc:
            raise SnapshotFormatError(f"snapshot is missing field {exc.args[0]!r}") from exc


def build_snapshot(product, category_path: list | None, captured_at: datetime) -> ProductSnapshot:
    """
    Assemble a snapshot from a loaded Product row.

    category_path is the list of ancestor categories from root to the
    product's own category (empty or None when uncategorized).
    """
    category = None
    if product.category is not None:
        names = tuple(c.name for c in (category_path or [product.category]))
        category = CategoryLabel(
            id=product.category.id,
            name=product.category.name,
            slug=product.category.slug,
            path=names,
        )

    return ProductSnapshot(
        product_id=product.id,
        name=product.name,
        slug=product.slug,
        description=product.description,
        unit_price_cents=product.price_cents,
        attributes=product.attributes or {},
        category=category,
        captured_at=to_utc_z(captured_at),
    )
