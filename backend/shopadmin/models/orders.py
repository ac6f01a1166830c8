from __future__ import annotations

import copy

from sqlalchemy.orm import validates

from ..extensions import db
from ..services.snapshots import ProductSnapshot
from shopadmin.time_utils import to_utc_z


class Order(db.Model):
    """
    Customer order header. Immutable historical record once created;
    only status and notes change afterwards.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_admin_id = db.Column(db.Integer, db.ForeignKey("admin_users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "status": self.status,
            "notes": self.notes,
            "created_by_admin_id": self.created_by_admin_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    Historical line item.

    product_snapshot is a WRITE-ONCE, fully denormalized copy of the product at
    the moment the line was created (see snapshots.ProductSnapshot). Later
    renames, re-categorization, soft deletes of the product never touch it.

    product_id stays a real foreign key: it is what makes a product "in use"
    and blocks its hard delete.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.Index("ix_order_items_product", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    product_snapshot = db.Column(db.JSON, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("items", lazy=True, order_by="OrderItem.id"))
    product = db.relationship("Product")

    @validates("product_snapshot")
    def _validate_snapshot(self, key, value):
        if self.product_snapshot is not None:
            raise ValueError(f"OrderItem {self.id} snapshot is write-once")
        if not isinstance(value, dict):
            raise ValueError("product_snapshot must be a dict")
        return copy.deepcopy(value)

    def snapshot(self) -> ProductSnapshot:
        """Stored snapshot read back through its versioned schema (SnapshotFormatError if unreadable)."""
        return ProductSnapshot.from_dict(self.product_snapshot)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "product_snapshot": self.snapshot().to_dict(),
            "created_at": to_utc_z(self.created_at),
        }
