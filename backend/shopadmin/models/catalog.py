from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from shopadmin.time_utils import to_utc_z


class Category(db.Model):
    """
    Catalog taxonomy node.

    HIERARCHY: Self-referential parent/child tree. The structural rules
    (acyclic, depth <= 3, unique slug) are enforced by taxonomy_service;
    the only database-level backstop is the unique slug constraint.

    Categories are hard-deleted only when they have no children and no
    product points at them; otherwise they are deactivated instead.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("slug", name="uq_categories_slug"),
        db.Index("ix_categories_parent_active", "parent_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(220), nullable=False)
    description = db.Column(db.Text, nullable=True)

    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by_admin_id = db.Column(db.Integer, db.ForeignKey("admin_users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("children", lazy=True))
    created_by_admin = db.relationship("AdminUser", foreign_keys=[created_by_admin_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Category id={self.id} slug={self.slug!r} parent_id={self.parent_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "parent_id": self.parent_id,
            "is_active": self.is_active,
            "created_by_admin_id": self.created_by_admin_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class Product(db.Model):
    """
    Catalog entry.

    LIFECYCLE: is_active and is_deleted are independent axes.
    - is_active=False, is_deleted=False: hidden but restorable
    - is_deleted=True: tombstoned (also forced inactive), restorable via reactivate
    Tombstoned rows are excluded from every catalog-facing query but are never
    removed while an order item references them (see lifecycle_service).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("slug", name="uq_products_slug"),
        db.Index("ix_products_catalog_visible", "is_deleted", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(280), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in minor units (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=True)

    # Display attributes (capacity, color, material, ...) captured into order snapshots
    attributes = db.Column(db.JSON, nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by_admin_id = db.Column(db.Integer, db.ForeignKey("admin_users.id"), nullable=True)

    created_by_admin_id = db.Column(db.Integer, db.ForeignKey("admin_users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    deleted_by_admin = db.relationship("AdminUser", foreign_keys=[deleted_by_admin_id])
    created_by_admin = db.relationship("AdminUser", foreign_keys=[created_by_admin_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} slug={self.slug!r} deleted={self.is_deleted}>"

    @validates("attributes")
    def _validate_attributes(self, key, value):
        if value is not None and not isinstance(value, dict):
            raise ValueError("attributes must be a dict")
        return value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "price_cents": self.price_cents,
            "attributes": dict(self.attributes or {}),
            "category_id": self.category_id,
            "is_active": self.is_active,
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "deleted_by_admin_id": self.deleted_by_admin_id,
            "created_by_admin_id": self.created_by_admin_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
