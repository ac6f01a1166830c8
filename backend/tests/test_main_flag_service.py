"""
Main-phone invariant tests: exactly one main phone per customer with phones.
"""

import random

import pytest
from sqlalchemy.exc import IntegrityError

from shopadmin.models import Customer, CustomerPhone
from shopadmin.services import phone_service
from shopadmin.services.main_flag_service import (
    ItemNotFoundError,
    LastItemRemovalForbiddenError,
    OwnerNotFoundError,
    phone_coordinator,
)


def _phone(number):
    return CustomerPhone(phone_number=number)


def _mains(db_session, customer_id):
    return [
        p.id for p in db_session.query(CustomerPhone)
        .filter(CustomerPhone.customer_id == customer_id, CustomerPhone.is_main == True)  # noqa: E712
        .all()
    ]


@pytest.fixture
def two_phones(db_session, customer):
    p1 = phone_coordinator.add(customer.id, _phone("0901000001"))
    p2 = phone_coordinator.add(customer.id, _phone("0901000002"))
    db_session.commit()
    return p1, p2


# ================================================================================
# ADD
# ================================================================================

def test_first_item_is_flagged_unconditionally(db_session, customer):
    p1 = phone_coordinator.add(customer.id, _phone("0901000001"), requested_flag=False)
    db_session.commit()

    assert p1.is_main is True
    assert phone_coordinator.flagged_count(customer.id) == 1


def test_add_without_flag_keeps_holder(db_session, two_phones, customer):
    p1, p2 = two_phones
    assert p1.is_main is True
    assert p2.is_main is False


def test_add_with_flag_moves_it(db_session, two_phones, customer):
    p1, _ = two_phones
    p3 = phone_coordinator.add(customer.id, _phone("0901000003"), requested_flag=True)
    db_session.commit()

    assert _mains(db_session, customer.id) == [p3.id]
    db_session.refresh(p1)
    assert p1.is_main is False


def test_add_to_missing_owner(db_session):
    with pytest.raises(OwnerNotFoundError):
        phone_coordinator.add(987654, _phone("0901000001"))


# ================================================================================
# SET FLAG
# ================================================================================

def test_set_flag_moves_main(db_session, two_phones, customer):
    p1, p2 = two_phones

    phone_coordinator.set_flag(customer.id, p2.id)
    db_session.commit()

    db_session.refresh(p1)
    db_session.refresh(p2)
    assert p1.is_main is False
    assert p2.is_main is True
    assert phone_coordinator.flagged_count(customer.id) == 1


def test_set_flag_on_holder_is_a_no_op(db_session, two_phones, customer):
    p1, _ = two_phones
    phone_coordinator.set_flag(customer.id, p1.id)
    db_session.commit()
    assert _mains(db_session, customer.id) == [p1.id]


def test_set_flag_requires_item_of_owner(db_session, two_phones, customer):
    _, p2 = two_phones
    other = Customer(full_name="Tran Thi B")
    db_session.add(other)
    db_session.commit()

    with pytest.raises(ItemNotFoundError):
        phone_coordinator.set_flag(other.id, p2.id)
    with pytest.raises(OwnerNotFoundError):
        phone_coordinator.set_flag(555555, p2.id)


# ================================================================================
# REMOVE
# ================================================================================

def test_removing_only_item_is_forbidden(db_session, customer):
    p1 = phone_coordinator.add(customer.id, _phone("0901000001"))
    db_session.commit()

    with pytest.raises(LastItemRemovalForbiddenError):
        phone_coordinator.remove(p1.id)
    db_session.rollback()

    assert _mains(db_session, customer.id) == [p1.id]
    assert phone_coordinator.item_count(customer.id) == 1


def test_removing_holder_promotes_oldest_sibling(db_session, customer):
    p1 = phone_coordinator.add(customer.id, _phone("0901000001"))
    p2 = phone_coordinator.add(customer.id, _phone("0901000002"))
    phone_coordinator.add(customer.id, _phone("0901000003"))
    db_session.commit()

    phone_coordinator.remove(p1.id)
    db_session.commit()

    assert _mains(db_session, customer.id) == [p2.id]
    assert phone_coordinator.item_count(customer.id) == 2


def test_removing_non_holder_keeps_holder(db_session, two_phones, customer):
    p1, p2 = two_phones
    phone_coordinator.remove(p2.id)
    db_session.commit()
    assert _mains(db_session, customer.id) == [p1.id]


def test_remove_checks_owner(db_session, two_phones, customer):
    _, p2 = two_phones
    with pytest.raises(ItemNotFoundError):
        phone_coordinator.remove(p2.id, owner_id=customer.id + 1000)
    with pytest.raises(ItemNotFoundError):
        phone_coordinator.remove(999999)


# ================================================================================
# UPDATE
# ================================================================================

def test_unflag_only_item_is_forbidden(db_session, customer):
    p1 = phone_coordinator.add(customer.id, _phone("0901000001"))
    db_session.commit()

    with pytest.raises(LastItemRemovalForbiddenError):
        phone_coordinator.update(p1.id, {"label": "home"}, requested_flag=False)
    db_session.rollback()

    db_session.refresh(p1)
    assert p1.is_main is True
    assert p1.label is None


def test_unflag_holder_promotes_sibling(db_session, two_phones, customer):
    p1, p2 = two_phones
    phone_coordinator.update(p1.id, {"label": "old"}, requested_flag=False)
    db_session.commit()

    assert _mains(db_session, customer.id) == [p2.id]
    db_session.refresh(p1)
    assert p1.label == "old"


def test_update_with_flag_behaves_like_set_flag(db_session, two_phones, customer):
    _, p2 = two_phones
    phone_coordinator.update(p2.id, {}, requested_flag=True)
    db_session.commit()
    assert _mains(db_session, customer.id) == [p2.id]


def test_update_rejects_protected_fields(db_session, two_phones):
    p1, _ = two_phones
    with pytest.raises(ValueError):
        phone_coordinator.update(p1.id, {"is_main": False})
    with pytest.raises(ValueError):
        phone_coordinator.update(p1.id, {"customer_id": 42})


@pytest.mark.parametrize("field", ["to_dict", "query", "customer", "created_at", "not_a_column"])
def test_update_accepts_only_mapped_columns(db_session, two_phones, field):
    p1, _ = two_phones
    with pytest.raises(ValueError):
        phone_coordinator.update(p1.id, {field: "x"})
    db_session.rollback()

    db_session.refresh(p1)
    assert p1.phone_number == "0901000001"


# ================================================================================
# INVARIANT
# ================================================================================

def test_database_rejects_two_main_phones(db_session, two_phones):
    _, p2 = two_phones
    p2.is_main = True

    with pytest.raises(IntegrityError):
        db_session.flush()
    db_session.rollback()


def test_invariant_holds_after_random_sequences(db_session, customer):
    rng = random.Random(20261019)
    counter = 0

    for _ in range(200):
        phones = phone_coordinator.items(customer.id)
        op = rng.choice(["add", "add_flag", "set", "remove", "update_off", "update_on"])
        try:
            if op in ("add", "add_flag") or not phones:
                counter += 1
                phone_coordinator.add(customer.id, _phone(f"09{counter:08d}"), requested_flag=(op == "add_flag"))
            elif op == "set":
                phone_coordinator.set_flag(customer.id, rng.choice(phones).id)
            elif op == "remove":
                phone_coordinator.remove(rng.choice(phones).id)
            elif op == "update_off":
                phone_coordinator.update(rng.choice(phones).id, {}, requested_flag=False)
            else:
                phone_coordinator.update(rng.choice(phones).id, {}, requested_flag=True)
            db_session.commit()
        except LastItemRemovalForbiddenError:
            db_session.rollback()

        assert phone_coordinator.item_count(customer.id) >= 1
        assert phone_coordinator.flagged_count(customer.id) == 1


# ================================================================================
# PHONE SERVICE
# ================================================================================

def test_phone_numbers_are_normalized_and_unique(db_session, customer):
    phone = phone_service.add_customer_phone(customer.id, "(090) 123-4567", label=" Home ")
    db_session.commit()

    assert phone.phone_number == "0901234567"
    assert phone.label == "Home"
    assert phone.is_main is True

    with pytest.raises(ValueError):
        phone_service.add_customer_phone(customer.id, "090 123 4567")
    with pytest.raises(ValueError):
        phone_service.add_customer_phone(customer.id, "abc")


def test_phone_service_unflag_and_delete(db_session, customer):
    first = phone_service.add_customer_phone(customer.id, "0901000001")
    second = phone_service.add_customer_phone(customer.id, "+84901000002")
    db_session.commit()

    phone_service.update_customer_phone(customer.id, first.id, {"is_main": False})
    db_session.commit()
    assert phone_service.get_main_phone(customer.id).id == second.id

    phone_service.delete_customer_phone(customer.id, second.id)
    db_session.commit()
    assert phone_service.get_main_phone(customer.id).id == first.id

    with pytest.raises(LastItemRemovalForbiddenError):
        phone_service.delete_customer_phone(customer.id, first.id)
