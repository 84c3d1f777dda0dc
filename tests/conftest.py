import os
import tempfile
from pathlib import Path

# point the engine at a throwaway SQLite file before any app module is imported
_TMP_DIR = Path(tempfile.mkdtemp(prefix="ledger_test_"))
os.environ["APP_DB_PATH"] = str(_TMP_DIR / "test_ledger.db")
os.environ.setdefault("LEDGER_CONFLICT_BACKOFF", "0")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete

from authz import Actor


@pytest.fixture(scope="session")
def app_module():
    import main

    return main


@pytest.fixture()
def client(app_module):
    import dependencies
    from db import SessionLocal

    # route every request through a fresh session on the test database
    def _get_db_override():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app_module.app.dependency_overrides[dependencies.get_db] = _get_db_override
    with TestClient(app_module.app) as c:
        yield c
    app_module.app.dependency_overrides.clear()


@pytest.fixture()
def db_session(app_module):
    from db import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def clean_db(app_module, db_session):
    # wipe every table before each test (journal -> workflows -> lots -> catalog)
    from orm import (
        AssetLotORM,
        AssignmentORM,
        BaseORM,
        EquipmentTypeORM,
        ExpenditureORM,
        MovementORM,
        PurchaseORM,
        TransferORM,
    )

    for cls in (
        MovementORM,
        ExpenditureORM,
        AssignmentORM,
        TransferORM,
        AssetLotORM,
        PurchaseORM,
        EquipmentTypeORM,
        BaseORM,
    ):
        db_session.execute(delete(cls))
    db_session.commit()
    yield


# ---------- actors ----------
@pytest.fixture()
def admin():
    return Actor(user_id="admin-1", role="admin")


@pytest.fixture()
def logistics():
    return Actor(user_id="logi-1", role="logistics_officer")


def _headers_for(actor: Actor) -> dict[str, str]:
    h = {"X-Actor-Id": actor.user_id, "X-Actor-Role": actor.role}
    if actor.assigned_base:
        h["X-Actor-Base"] = actor.assigned_base
    if not actor.active:
        h["X-Actor-Active"] = "false"
    return h


@pytest.fixture()
def headers_for():
    return _headers_for


@pytest.fixture()
def admin_headers(admin):
    return _headers_for(admin)


# ---------- reference data ----------
@pytest.fixture()
def catalog_data(db_session, admin):
    """Bases ALPHA/BRAVO/CHARLIE and one equipment type (RADIO)."""
    import catalog
    from models import BaseIn, EquipmentTypeIn

    bases = {
        code: catalog.create_base(db_session, admin, BaseIn(name=f"Base {code.title()}", code=code))
        for code in ("ALPHA", "BRAVO", "CHARLIE")
    }
    radio = catalog.create_equipment_type(
        db_session,
        admin,
        EquipmentTypeIn(name="Field Radio", code="RADIO", category="EQUIPMENT"),
    )
    return {
        "a": bases["ALPHA"].id,
        "b": bases["BRAVO"].id,
        "c": bases["CHARLIE"].id,
        "radio": radio.id,
    }


@pytest.fixture()
def commander_of(catalog_data):
    def _make(key: str) -> Actor:
        return Actor(user_id=f"cmdr-{key}", role="base_commander", assigned_base=catalog_data[key])

    return _make


@pytest.fixture()
def stocked_lot(db_session, admin, catalog_data):
    """A delivered purchase of 10 radios at base ALPHA. Returns the lot id."""
    import purchases
    from models import PurchaseIn

    p = purchases.create_purchase(
        db_session,
        admin,
        PurchaseIn(base_id=catalog_data["a"], equipment_type_id=catalog_data["radio"], quantity=10, unit_price="120.50"),
    )
    delivered = purchases.mark_delivered(db_session, admin, p.id)
    return delivered.lot_id
