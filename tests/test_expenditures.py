import pytest

import crud
import expenditures
import transfers
from errors import InsufficientQuantityError, InvalidStateTransitionError
from models import ExpenditureIn, ExpenditureUpdate, TransferIn


def _expend(db, actor, lot_id, quantity, reason="TRAINING"):
    return expenditures.create_expenditure(db, actor, ExpenditureIn(lot_id=lot_id, quantity=quantity, reason=reason))


def _lot(db, lot_id):
    db.expire_all()
    lot, _ = crud.get_lot(db, lot_id)
    return lot


def test_radio_lifecycle_across_two_bases(db_session, admin, catalog_data, stocked_lot):
    t = transfers.initiate_transfer(
        db_session,
        admin,
        TransferIn(
            source_base_id=catalog_data["a"],
            dest_base_id=catalog_data["b"],
            lot_id=stocked_lot,
            quantity=4,
        ),
    )
    transfers.approve_transfer(db_session, admin, t.id)
    done = transfers.complete_transfer(db_session, admin, t.id)
    assert _lot(db_session, stocked_lot).quantity == 6
    assert _lot(db_session, done.dest_lot_id).quantity == 4

    e = _expend(db_session, admin, stocked_lot, 6)
    assert e.status == "PENDING"
    lot = _lot(db_session, stocked_lot)
    assert lot.quantity == 6
    assert lot.reserved == 6
    assert crud.available_quantity(lot) == 0

    expenditures.approve_expenditure(db_session, admin, e.id)
    assert _lot(db_session, stocked_lot).quantity == 6

    completed = expenditures.complete_expenditure(db_session, admin, e.id)
    assert completed.status == "COMPLETED"
    assert completed.completed_by == admin.user_id

    lot = _lot(db_session, stocked_lot)
    assert lot.quantity == 0
    assert lot.reserved == 0
    assert lot.retired_at is not None
    assert lot.status == "EXPENDED"


def test_partial_expenditure_keeps_lot_live(db_session, admin, stocked_lot):
    e = _expend(db_session, admin, stocked_lot, 3)
    expenditures.approve_expenditure(db_session, admin, e.id)
    expenditures.complete_expenditure(db_session, admin, e.id)

    lot = _lot(db_session, stocked_lot)
    assert lot.quantity == 7
    assert lot.reserved == 0
    assert lot.retired_at is None

    moves = crud.list_movements(db_session, reference_id=e.id)
    assert [(m.movement_type, m.quantity_change, m.balance_after) for m in moves] == [("EXPENDITURE", -3, 7)]


def test_reservations_cannot_exceed_available(db_session, admin, stocked_lot):
    _expend(db_session, admin, stocked_lot, 7)
    with pytest.raises(InsufficientQuantityError) as ei:
        _expend(db_session, admin, stocked_lot, 4)
    assert ei.value.available == 3
    _expend(db_session, admin, stocked_lot, 3)
    assert _lot(db_session, stocked_lot).reserved == 10


def test_cancel_releases_hold_and_records_reason(db_session, admin, stocked_lot):
    e = _expend(db_session, admin, stocked_lot, 5)
    expenditures.update_expenditure(db_session, admin, e.id, ExpenditureUpdate(notes="range day"))
    cancelled = expenditures.cancel_expenditure(db_session, admin, e.id, reason="exercise postponed")

    assert cancelled.status == "CANCELLED"
    assert cancelled.cancellation_reason == "exercise postponed"
    assert cancelled.notes == "range day\nCancellation reason: exercise postponed"
    lot = _lot(db_session, stocked_lot)
    assert lot.reserved == 0
    assert lot.quantity == 10


def test_expenditure_state_machine(db_session, admin, stocked_lot):
    e = _expend(db_session, admin, stocked_lot, 2)

    with pytest.raises(InvalidStateTransitionError):
        expenditures.complete_expenditure(db_session, admin, e.id)

    expenditures.approve_expenditure(db_session, admin, e.id)
    expenditures.complete_expenditure(db_session, admin, e.id)

    for op in (
        expenditures.approve_expenditure,
        expenditures.complete_expenditure,
        expenditures.cancel_expenditure,
    ):
        with pytest.raises(InvalidStateTransitionError):
            op(db_session, admin, e.id)


def test_assigned_lot_takes_no_new_holds(db_session, admin, stocked_lot):
    import assignments
    from models import AssignmentIn

    assignments.create_assignment(db_session, admin, AssignmentIn(lot_id=stocked_lot, personnel_id="P-7"))
    with pytest.raises(InsufficientQuantityError):
        _expend(db_session, admin, stocked_lot, 1)
