# Overview: Service-layer operations for single-flag collections; encapsulates business logic and database work.

"""
Singleton Flag Coordinator

================================================================================
PURPOSE: Exactly one flagged item per owner, across every mutation
================================================================================

INVARIANT:
For every owner with at least one item, exactly one item carries the flag.
An owner with zero items has nothing to enforce, but an owner may never be
taken from one item to zero through this coordinator.

TRANSITIONS:
- add:      first item is flagged unconditionally; a requested flag moves it
- set_flag: clear every sibling, then set the target
- remove:   the last item cannot be removed; removing the flag-holder
            promotes the oldest remaining sibling (created_at, then id)
- update:   explicit un-flag of the flag-holder promotes the oldest sibling,
            and is refused when it is the only item

CONCURRENCY:
Each operation starts by locking the owner row (SELECT ... FOR UPDATE), so
two transitions for the same owner serialize on that lock. All checks run
before the first write. Writes are flushed clear-then-set so the partial
unique index on the flag never sees two flagged rows. The caller commits the
whole unit or rolls it back.

The coordinator is generic; phone_coordinator applies it to customer phones.
================================================================================
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Customer, CustomerPhone
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_row


logger = logging.getLogger(__name__)


class OwnerNotFoundError(NotFoundError):
    """Operation targets an owner that does not exist."""


class ItemNotFoundError(NotFoundError):
    """Item does not exist or belongs to a different owner."""


class LastItemRemovalForbiddenError(ConflictError):
    """Operation would leave an owner with items but no flag-holder, or with none."""


class SingletonFlagCoordinator:
    """
    Keeps "exactly one flagged item per owner" for one owned collection.

    Args:
        item_model: Mapped class of the owned items
        owner_model: Mapped class of the owner (its row is the lock target)
        owner_key: Attribute on item_model holding the owner id
        flag_key: Boolean attribute on item_model carrying the flag
    """

    def __init__(self, item_model, owner_model, owner_key: str, flag_key: str):
        self.item_model = item_model
        self.owner_model = owner_model
        self.owner_key = owner_key
        self.flag_key = flag_key

    # --------------------------------------------------------------------
    # Reads
    # --------------------------------------------------------------------

    @property
    def _owner_col(self):
        return getattr(self.item_model, self.owner_key)

    @property
    def _flag_col(self):
        return getattr(self.item_model, self.flag_key)

    def _items_query(self, owner_id: int):
        return db.session.query(self.item_model).filter(self._owner_col == owner_id)

    def items(self, owner_id: int) -> list:
        """Items of an owner, oldest first."""
        return (
            self._items_query(owner_id)
            .order_by(self.item_model.created_at.asc(), self.item_model.id.asc())
            .all()
        )

    def flagged_item(self, owner_id: int):
        return self._items_query(owner_id).filter(self._flag_col == True).first()  # noqa: E712

    def flagged_count(self, owner_id: int) -> int:
        return self._items_query(owner_id).filter(self._flag_col == True).count()  # noqa: E712

    def item_count(self, owner_id: int) -> int:
        return self._items_query(owner_id).count()

    # --------------------------------------------------------------------
    # Internals
    # --------------------------------------------------------------------

    def _lock_owner(self, owner_id: int):
        owner = lock_row(self.owner_model, owner_id)
        if owner is None:
            raise OwnerNotFoundError(f"{self.owner_model.__name__} {owner_id} not found")
        return owner

    def _owner_of(self, item_id: int) -> int:
        owner_id = (
            db.session.query(self._owner_col)
            .filter(self.item_model.id == item_id)
            .scalar()
        )
        if owner_id is None:
            raise ItemNotFoundError(f"{self.item_model.__name__} {item_id} not found")
        return owner_id

    def _load_item(self, owner_id: int, item_id: int):
        item = self._items_query(owner_id).filter(self.item_model.id == item_id).first()
        if item is None:
            raise ItemNotFoundError(
                f"{self.item_model.__name__} {item_id} not found for "
                f"{self.owner_model.__name__.lower()} {owner_id}"
            )
        return item

    def _lock_for_item(self, item_id: int, owner_id: int | None):
        resolved_owner = self._owner_of(item_id)
        if owner_id is not None and owner_id != resolved_owner:
            raise ItemNotFoundError(
                f"{self.item_model.__name__} {item_id} not found for "
                f"{self.owner_model.__name__.lower()} {owner_id}"
            )
        self._lock_owner(resolved_owner)
        # Re-read under the lock; a concurrent transaction may have removed it.
        return resolved_owner, self._load_item(resolved_owner, item_id)

    def _oldest_sibling(self, owner_id: int, exclude_id: int):
        return (
            self._items_query(owner_id)
            .filter(self.item_model.id != exclude_id)
            .order_by(self.item_model.created_at.asc(), self.item_model.id.asc())
            .first()
        )

    def _clear_flags(self, owner_id: int, except_id: int | None = None) -> None:
        q = self._items_query(owner_id).filter(self._flag_col == True)  # noqa: E712
        if except_id is not None:
            q = q.filter(self.item_model.id != except_id)
        q.update({self.flag_key: False}, synchronize_session="fetch")
        db.session.flush()

    def _raise_flag(self, item) -> None:
        setattr(item, self.flag_key, True)
        db.session.flush()

    def _check_changes(self, changes: dict) -> None:
        # Only plain mapped columns; relationships, methods and bookkeeping columns are refused.
        columns = {c.key for c in self.item_model.__mapper__.columns}
        protected = {"id", "created_at", "updated_at", self.owner_key, self.flag_key}
        for key in changes:
            if key in protected:
                raise ValidationError(f"Field not allowed: {key}")
            if key not in columns:
                raise ValidationError(f"Unknown field: {key}")

    # --------------------------------------------------------------------
    # Transitions
    # --------------------------------------------------------------------

    def add(self, owner_id: int, item, requested_flag: bool = False):
        """
        Attach a new (transient) item to owner_id.

        The owner's first item is flagged regardless of requested_flag.
        """
        self._lock_owner(owner_id)

        is_first = self.item_count(owner_id) == 0
        flag = is_first or bool(requested_flag)

        if flag and not is_first:
            self._clear_flags(owner_id)

        setattr(item, self.owner_key, owner_id)
        setattr(item, self.flag_key, flag)
        db.session.add(item)
        db.session.flush()

        if flag:
            logger.info(
                "%s %s flagged on add for owner %s",
                self.item_model.__name__, item.id, owner_id,
            )
        return item

    def set_flag(self, owner_id: int, item_id: int):
        """Make item_id the owner's flag-holder."""
        self._lock_owner(owner_id)
        item = self._load_item(owner_id, item_id)

        self._clear_flags(owner_id, except_id=item.id)
        if not getattr(item, self.flag_key):
            self._raise_flag(item)
        return item

    def remove(self, item_id: int, *, owner_id: int | None = None) -> None:
        """
        Delete an item, promoting the oldest sibling if it held the flag.

        Raises:
            ItemNotFoundError: Unknown item, or owner_id given and not its owner
            LastItemRemovalForbiddenError: item is the owner's only item
        """
        resolved_owner, item = self._lock_for_item(item_id, owner_id)

        successor = self._oldest_sibling(resolved_owner, exclude_id=item.id)
        if successor is None:
            raise LastItemRemovalForbiddenError(
                f"Cannot remove the only {self.item_model.__name__} of "
                f"{self.owner_model.__name__.lower()} {resolved_owner}"
            )

        was_flagged = bool(getattr(item, self.flag_key))
        db.session.delete(item)
        db.session.flush()

        if was_flagged:
            self._raise_flag(successor)
            logger.info(
                "%s %s promoted after removal of %s for owner %s",
                self.item_model.__name__, successor.id, item_id, resolved_owner,
            )

    def update(self, item_id: int, changes: dict, requested_flag: bool | None = None, *, owner_id: int | None = None):
        """
        Apply field changes and an optional flag request to one item.

        requested_flag=None leaves the flag alone, True behaves like set_flag,
        False on the flag-holder hands the flag to the oldest sibling.
        """
        changes = dict(changes or {})
        self._check_changes(changes)

        resolved_owner, item = self._lock_for_item(item_id, owner_id)
        is_flagged = bool(getattr(item, self.flag_key))

        successor = None
        if requested_flag is False and is_flagged:
            successor = self._oldest_sibling(resolved_owner, exclude_id=item.id)
            if successor is None:
                raise LastItemRemovalForbiddenError(
                    f"{self.owner_model.__name__} {resolved_owner} must keep a flagged "
                    f"{self.item_model.__name__}; it cannot unflag its only item"
                )

        for key, value in changes.items():
            setattr(item, key, value)
        db.session.flush()

        if requested_flag is True:
            self._clear_flags(resolved_owner, except_id=item.id)
            if not is_flagged:
                self._raise_flag(item)
        elif successor is not None:
            setattr(item, self.flag_key, False)
            db.session.flush()
            self._raise_flag(successor)
            logger.info(
                "%s %s promoted after %s was unflagged for owner %s",
                self.item_model.__name__, successor.id, item_id, resolved_owner,
            )

        return item


phone_coordinator = SingletonFlagCoordinator(
    item_model=CustomerPhone,
    owner_model=Customer,
    owner_key="customer_id",
    flag_key="is_main",
)
