from decimal import Decimal

import pytest
from sqlalchemy import select

import crud
import purchases
from errors import ForbiddenError, InvalidReferenceError, InvalidStateTransitionError, ValidationError
from models import PurchaseIn, PurchaseUpdate
from orm import AssetLotORM, MovementORM


def _order(db, actor, catalog_data, quantity=10, base_key="a", unit_price="99.99"):
    body = PurchaseIn(
        base_id=catalog_data[base_key],
        equipment_type_id=catalog_data["radio"],
        quantity=quantity,
        unit_price=unit_price,
        supplier_name="Acme Comms",
    )
    return purchases.create_purchase(db, actor, body)


def test_create_purchase_computes_total_and_leaves_ledger_untouched(db_session, admin, catalog_data):
    p = _order(db_session, admin, catalog_data, quantity=3, unit_price="10.25")

    assert p.status == "ORDERED"
    assert p.total_amount == Decimal("30.75")
    assert p.lot_id is None
    assert db_session.execute(select(AssetLotORM)).first() is None
    assert db_session.execute(select(MovementORM)).first() is None


def test_update_purchase_recomputes_total(db_session, admin, catalog_data):
    p = _order(db_session, admin, catalog_data, quantity=2, unit_price="5.00")
    updated = purchases.update_purchase(db_session, admin, p.id, PurchaseUpdate(quantity=4))

    assert updated.quantity == 4
    assert updated.total_amount == Decimal("20.00")
    assert updated.version == p.version + 1


def test_mark_delivered_creates_lot_and_movement(db_session, admin, catalog_data):
    p = _order(db_session, admin, catalog_data, quantity=10)
    delivered = purchases.mark_delivered(db_session, admin, p.id)

    assert delivered.status == "DELIVERED"
    assert delivered.delivery_date is not None
    lot, _ = crud.get_lot(db_session, delivered.lot_id)
    assert lot.quantity == 10
    assert lot.status == "AVAILABLE"
    assert lot.condition == "NEW"
    assert lot.base_id == catalog_data["a"]
    assert lot.purchase_id == p.id
    assert lot.serial_number == "A001"

    moves = crud.list_movements(db_session, reference_id=p.id)
    assert [(m.movement_type, m.quantity_change, m.balance_after) for m in moves] == [("PURCHASE", 10, 10)]


def test_second_delivery_merges_into_matching_lot(db_session, admin, catalog_data):
    first = purchases.mark_delivered(db_session, admin, _order(db_session, admin, catalog_data, quantity=4).id)
    second = purchases.mark_delivered(db_session, admin, _order(db_session, admin, catalog_data, quantity=6).id)

    assert second.lot_id == first.lot_id
    lot, _ = crud.get_lot(db_session, first.lot_id)
    assert lot.quantity == 10


def test_delivery_is_idempotent(db_session, admin, catalog_data):
    p = _order(db_session, admin, catalog_data, quantity=10)
    delivered = purchases.mark_delivered(db_session, admin, p.id)

    with pytest.raises(InvalidStateTransitionError):
        purchases.mark_delivered(db_session, admin, p.id)

    db_session.expire_all()
    lot, _ = crud.get_lot(db_session, delivered.lot_id)
    assert lot.quantity == 10
    assert len(crud.list_movements(db_session, movement_type="PURCHASE")) == 1


def test_cancelled_purchase_cannot_be_delivered_or_edited(db_session, admin, catalog_data):
    p = _order(db_session, admin, catalog_data)
    cancelled = purchases.cancel_purchase(db_session, admin, p.id)
    assert cancelled.status == "CANCELLED"

    with pytest.raises(InvalidStateTransitionError):
        purchases.mark_delivered(db_session, admin, p.id)
    with pytest.raises(InvalidStateTransitionError):
        purchases.update_purchase(db_session, admin, p.id, PurchaseUpdate(notes="late"))
    with pytest.raises(InvalidStateTransitionError):
        purchases.cancel_purchase(db_session, admin, p.id)


def test_commander_purchase_lands_on_own_base(db_session, catalog_data, commander_of):
    cmdr = commander_of("b")
    p = _order(db_session, cmdr, catalog_data, base_key="a")
    assert p.base_id == catalog_data["b"]


def test_commander_cannot_deliver_foreign_purchase(db_session, admin, catalog_data, commander_of):
    p = _order(db_session, admin, catalog_data, base_key="a")
    with pytest.raises(ForbiddenError) as ei:
        purchases.mark_delivered(db_session, commander_of("b"), p.id)
    assert ei.value.reason == ForbiddenError.BASE_MISMATCH


def test_user_role_cannot_create_purchase(db_session, catalog_data):
    from authz import Actor

    with pytest.raises(ForbiddenError) as ei:
        _order(db_session, Actor(user_id="u1", role="user"), catalog_data)
    assert ei.value.reason == ForbiddenError.ROLE_INSUFFICIENT


def test_purchase_requires_known_references(db_session, admin, catalog_data):
    with pytest.raises(InvalidReferenceError):
        purchases.create_purchase(
            db_session,
            admin,
            PurchaseIn(base_id="nope", equipment_type_id=catalog_data["radio"], quantity=1, unit_price="1"),
        )
    with pytest.raises(ValidationError):
        purchases.create_purchase(
            db_session,
            admin,
            PurchaseIn(equipment_type_id=catalog_data["radio"], quantity=1, unit_price="1"),
        )
