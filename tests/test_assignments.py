from datetime import timedelta

import pytest

import assignments
import crud
import expenditures
from errors import (
    ForbiddenError,
    InsufficientQuantityError,
    InvalidStateTransitionError,
    ValidationError,
)
from models import AssignmentIn, AssignmentUpdate, ExpenditureIn


def _assign(db, actor, lot_id, days=7):
    body = AssignmentIn(
        lot_id=lot_id,
        personnel_id="P-1001",
        personnel_name="Sgt. Reyes",
        personnel_rank="SGT",
        expected_return_date=crud.utcnow() + timedelta(days=days),
        purpose="patrol",
    )
    return assignments.create_assignment(db, actor, body)


def _lot(db, lot_id):
    db.expire_all()
    lot, _ = crud.get_lot(db, lot_id)
    return lot


def test_assign_and_return(db_session, admin, stocked_lot):
    a = _assign(db_session, admin, stocked_lot)
    assert a.status == "ACTIVE"
    assert a.quantity == 10
    lot = _lot(db_session, stocked_lot)
    assert lot.status == "ASSIGNED"
    assert crud.available_quantity(lot) == 0

    returned = assignments.return_asset(db_session, admin, a.id, condition="FAIR", notes="scratched antenna")
    assert returned.status == "RETURNED"
    assert returned.return_condition == "FAIR"
    assert returned.actual_return_date is not None

    lot = _lot(db_session, stocked_lot)
    assert lot.status == "AVAILABLE"
    assert lot.condition == "FAIR"
    assert lot.quantity == 10

    moves = crud.list_movements(db_session, reference_id=a.id)
    assert [(m.movement_type, m.quantity_change) for m in moves] == [("ASSIGNMENT", 0), ("RETURN", 0)]


def test_lost_retires_lot_and_blocks_return(db_session, admin, stocked_lot):
    a = _assign(db_session, admin, stocked_lot)
    lost = assignments.mark_lost_or_damaged(db_session, admin, a.id, "LOST", notes="ambush")
    assert lost.status == "LOST"

    lot = _lot(db_session, stocked_lot)
    assert lot.quantity == 0
    assert lot.status == "EXPENDED"
    assert lot.condition == "UNSERVICEABLE"
    assert lot.retired_at is not None

    with pytest.raises(InvalidStateTransitionError):
        assignments.return_asset(db_session, admin, a.id)

    loss = crud.list_movements(db_session, movement_type="LOSS")
    assert [(m.quantity_change, m.balance_after) for m in loss] == [(-10, 0)]


def test_damaged_sends_lot_to_maintenance(db_session, admin, stocked_lot):
    a = _assign(db_session, admin, stocked_lot)
    assignments.mark_lost_or_damaged(db_session, admin, a.id, "DAMAGED")

    lot = _lot(db_session, stocked_lot)
    assert lot.status == "MAINTENANCE"
    assert lot.condition == "POOR"
    assert lot.retired_at is not None


def test_partially_reserved_lot_cannot_be_assigned(db_session, admin, stocked_lot):
    e = expenditures.create_expenditure(
        db_session, admin, ExpenditureIn(lot_id=stocked_lot, quantity=3, reason="TRAINING")
    )
    with pytest.raises(InsufficientQuantityError) as ei:
        _assign(db_session, admin, stocked_lot)
    assert ei.value.requested == 10
    assert ei.value.available == 7

    lot = _lot(db_session, stocked_lot)
    assert lot.status == "AVAILABLE"
    assert lot.reserved == 3
    assert assignments.list_assignments(db_session, admin) == []

    expenditures.cancel_expenditure(db_session, admin, e.id, reason="stood down")
    a = _assign(db_session, admin, stocked_lot)
    assert a.quantity == 10


def test_write_off_rejects_other_statuses(db_session, admin, stocked_lot):
    a = _assign(db_session, admin, stocked_lot)
    with pytest.raises(ValidationError):
        assignments.mark_lost_or_damaged(db_session, admin, a.id, "RETURNED")


def test_lot_cannot_be_assigned_twice(db_session, admin, stocked_lot):
    _assign(db_session, admin, stocked_lot)
    with pytest.raises(InvalidStateTransitionError):
        _assign(db_session, admin, stocked_lot)


def test_fully_reserved_lot_cannot_be_assigned(db_session, admin, stocked_lot):
    expenditures.create_expenditure(
        db_session, admin, ExpenditureIn(lot_id=stocked_lot, quantity=10, reason="OPERATION")
    )
    with pytest.raises(InsufficientQuantityError):
        _assign(db_session, admin, stocked_lot)


def test_expected_return_date_must_be_in_future(db_session, admin, stocked_lot):
    with pytest.raises(ValidationError):
        _assign(db_session, admin, stocked_lot, days=-1)

    a = _assign(db_session, admin, stocked_lot)
    with pytest.raises(ValidationError):
        assignments.update_assignment(
            db_session,
            admin,
            a.id,
            AssignmentUpdate(expected_return_date=a.assignment_date - timedelta(hours=1)),
        )
    updated = assignments.update_assignment(db_session, admin, a.id, AssignmentUpdate(purpose="escort"))
    assert updated.purpose == "escort"


def test_commander_assigns_only_at_own_base(db_session, stocked_lot, commander_of):
    with pytest.raises(ForbiddenError):
        _assign(db_session, commander_of("b"), stocked_lot)
    a = _assign(db_session, commander_of("a"), stocked_lot)
    assert a.assigned_by == "cmdr-a"
