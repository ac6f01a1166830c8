from __future__ import annotations

from ..extensions import db
from shopadmin.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer master data.

    Owner of the phone collection; its row is the lock target that
    serializes concurrent main-phone transitions (see main_flag_service).
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_customers_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CustomerPhone(db.Model):
    """
    Customer phone number.

    MAIN PHONE INVARIANT: a customer with at least one phone has exactly one
    row with is_main=True. Application code keeps "at least one" true; the
    partial unique index keeps "at most one" true even against buggy writers.
    """
    __tablename__ = "customer_phones"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "phone_number", name="uq_customer_phones_customer_number"),
        db.Index("ix_customer_phones_customer_main", "customer_id", "is_main"),
        db.Index(
            "uq_customer_phones_one_main",
            "customer_id",
            unique=True,
            sqlite_where=db.text("is_main = 1"),
            postgresql_where=db.text("is_main"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    phone_number = db.Column(db.String(20), nullable=False, index=True)
    is_main = db.Column(db.Boolean, nullable=False, default=False)
    label = db.Column(db.String(50), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("phones", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "phone_number": self.phone_number,
            "is_main": self.is_main,
            "label": self.label,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
