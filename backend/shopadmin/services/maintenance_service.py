# Overview: Service-layer operations for maintenance; encapsulates business logic and database work.

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Category, CustomerPhone, SessionToken
from shopadmin.time_utils import utcnow
from .taxonomy_service import MAX_DEPTH, compute_depth


def cleanup_expired_sessions(*, retention_days: int = 30) -> int:
    """
    Delete session tokens that expired more than retention_days ago.

    Revoked-but-unexpired tokens are kept until they expire.
    """
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SessionToken).filter(
        SessionToken.expires_at < cutoff
    ).delete()
    db.session.commit()
    return deleted


def find_invariant_violations() -> dict:
    """
    Scan stored data for rows the services would never produce.

    Returns:
        {
            "categories_too_deep": [{"id", "slug", "depth"}],
            "customers_without_single_main": [{"customer_id", "phones", "main_phones"}],
        }
    """
    too_deep = []
    for category in db.session.query(Category).order_by(Category.id.asc()).all():
        depth = compute_depth(category.id)
        if depth > MAX_DEPTH:
            too_deep.append({"id": category.id, "slug": category.slug, "depth": depth})

    main_count = func.sum(db.case((CustomerPhone.is_main == True, 1), else_=0))  # noqa: E712
    rows = (
        db.session.query(
            CustomerPhone.customer_id,
            func.count(CustomerPhone.id),
            main_count,
        )
        .group_by(CustomerPhone.customer_id)
        .having(main_count != 1)
        .order_by(CustomerPhone.customer_id.asc())
        .all()
    )
    bad_owners = [
        {"customer_id": customer_id, "phones": phones, "main_phones": int(mains or 0)}
        for customer_id, phones, mains in rows
    ]

    return {
        "categories_too_deep": too_deep,
        "customers_without_single_main": bad_owners,
    }
