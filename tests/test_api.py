from datetime import timedelta

import crud
from authz import Actor


def _post(client, path, headers, json=None, expected=200):
    r = client.post(path, json=json, headers=headers)
    assert r.status_code == expected, r.text
    return r.json()


def _deliver_radios(client, h, catalog_data, quantity=10):
    p = _post(
        client,
        "/purchases",
        h,
        {
            "base_id": catalog_data["a"],
            "equipment_type_id": catalog_data["radio"],
            "quantity": quantity,
            "unit_price": "75.00",
        },
        expected=201,
    )
    return _post(client, f"/purchases/{p['id']}/deliver", h)


def test_root(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "docs" in r.json()


def test_actor_headers_are_required(client):
    r = client.get("/bases")
    assert r.status_code == 422


def test_catalog_endpoints(client, admin_headers, headers_for):
    r = client.post("/bases", json={"name": "Camp Delta", "code": "delta"}, headers=admin_headers)
    assert r.status_code == 201, r.text
    assert r.json()["code"] == "DELTA"

    r = client.post(
        "/equipment-types",
        json={"name": "Rifle", "code": "rfl", "category": "WEAPON"},
        headers=admin_headers,
    )
    assert r.status_code == 201, r.text
    et = r.json()

    r = client.get(f"/equipment-types/{et['id']}/summary", headers=admin_headers)
    assert r.json() == {"name": "Rifle", "category": "WEAPON"}

    r = client.get("/equipment-types?category=weapon", headers=admin_headers)
    assert [e["code"] for e in r.json()] == ["RFL"]

    r = client.post(
        "/bases",
        json={"name": "Camp Echo", "code": "ECHO"},
        headers=headers_for(Actor(user_id="l", role="logistics_officer")),
    )
    assert r.status_code == 403
    assert r.json()["error"]["reason"] == "role_insufficient"


def test_equipment_csv_import(client, admin_headers):
    csv_text = "Equipment Name,Type Code,Class\nBody Armor,armor,equipment\nJeep,jeep,VEHICLE\n"
    files = {"file": ("equipment.csv", csv_text.encode("utf-8"), "text/csv")}
    r = client.post("/equipment-types/import", files=files, headers=admin_headers)
    assert r.status_code == 200, r.text
    assert r.json() == {"created": 2, "skipped": 0, "errors": []}

    r = client.post("/equipment-types/import", files=files, headers=admin_headers)
    assert r.json()["skipped"] == 2


def test_delivery_twice_is_invalid_state_transition(client, admin_headers, catalog_data):
    delivered = _deliver_radios(client, admin_headers, catalog_data)
    assert delivered["status"] == "DELIVERED"

    r = client.post(f"/purchases/{delivered['id']}/deliver", headers=admin_headers)
    assert r.status_code == 409
    err = r.json()["error"]
    assert err["code"] == "invalid_state_transition"
    assert err["current_status"] == "DELIVERED"

    r = client.get(f"/lots/{delivered['lot_id']}/available", headers=admin_headers)
    assert r.json()["available"] == 10


def test_full_radio_scenario_over_http(client, admin_headers, catalog_data):
    h = admin_headers
    lot_a = _deliver_radios(client, h, catalog_data)["lot_id"]

    t = _post(
        client,
        "/transfers",
        h,
        {"source_base_id": catalog_data["a"], "dest_base_id": catalog_data["b"], "lot_id": lot_a, "quantity": 4},
        expected=201,
    )
    _post(client, f"/transfers/{t['id']}/approve", h)
    t = _post(client, f"/transfers/{t['id']}/complete", h)
    assert t["status"] == "COMPLETED"

    assert client.get(f"/lots/{lot_a}", headers=h).json()["quantity"] == 6
    assert client.get(f"/lots/{t['dest_lot_id']}", headers=h).json()["quantity"] == 4

    e = _post(client, "/expenditures", h, {"lot_id": lot_a, "quantity": 6, "reason": "TRAINING"}, expected=201)
    assert e["status"] == "PENDING"
    assert client.get(f"/lots/{lot_a}", headers=h).json()["quantity"] == 6

    _post(client, f"/expenditures/{e['id']}/approve", h)
    e = _post(client, f"/expenditures/{e['id']}/complete", h)
    assert e["status"] == "COMPLETED"

    lot = client.get(f"/lots/{lot_a}", headers=h).json()
    assert lot["quantity"] == 0
    assert lot["retired_at"] is not None

    live = client.get("/lots", params={"base": "ALPHA"}, headers=h).json()
    assert live == []
    retired = client.get("/lots", params={"base": "ALPHA", "include_retired": "true"}, headers=h).json()
    assert [x["id"] for x in retired] == [lot_a]

    r = client.get("/movements", params={"base_id": catalog_data["a"]}, headers=h)
    types = [m["movement_type"] for m in r.json()]
    assert types == ["PURCHASE", "TRANSFER_OUT", "EXPENDITURE"]


def test_assignment_lost_then_return_over_http(client, admin_headers, catalog_data):
    h = admin_headers
    lot_id = _deliver_radios(client, h, catalog_data)["lot_id"]
    due = (crud.utcnow() + timedelta(days=3)).isoformat()

    a = _post(
        client,
        "/assignments",
        h,
        {"lot_id": lot_id, "personnel_id": "P-42", "personnel_name": "Cpl. Ito", "expected_return_date": due},
        expected=201,
    )
    a = _post(client, f"/assignments/{a['id']}/loss", h, {"status": "LOST", "notes": "river crossing"})
    assert a["status"] == "LOST"

    r = client.post(f"/assignments/{a['id']}/return", json={"condition": "GOOD"}, headers=h)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "invalid_state_transition"


def test_commander_cannot_move_between_foreign_bases(client, admin_headers, catalog_data, commander_of, headers_for):
    lot_id = _deliver_radios(client, admin_headers, catalog_data)["lot_id"]
    r = client.post(
        "/transfers",
        json={"source_base_id": catalog_data["a"], "dest_base_id": catalog_data["b"], "lot_id": lot_id, "quantity": 1},
        headers=headers_for(commander_of("c")),
    )
    assert r.status_code == 403
    assert r.json()["error"] == {
        "code": "forbidden",
        "message": "operation denied: base_mismatch",
        "reason": "base_mismatch",
        "operation": "transfer.initiate",
    }


def test_commander_lists_are_scoped(client, admin_headers, catalog_data, commander_of, headers_for):
    _deliver_radios(client, admin_headers, catalog_data)

    cmdr_b = headers_for(commander_of("b"))
    assert client.get("/purchases", headers=cmdr_b).json() == []
    assert client.get("/lots", headers=cmdr_b).json() == []
    assert len(client.get("/purchases", headers=admin_headers).json()) == 1

    meta = client.get("/lots/meta", headers=admin_headers).json()
    assert meta["total"] == 1


def test_insufficient_quantity_and_validation_errors(client, admin_headers, catalog_data):
    lot_id = _deliver_radios(client, admin_headers, catalog_data, quantity=2)["lot_id"]

    r = client.post(
        "/expenditures",
        json={"lot_id": lot_id, "quantity": 3, "reason": "OPERATION"},
        headers=admin_headers,
    )
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "insufficient_quantity"
    assert r.json()["error"]["available"] == 2

    r = client.post(
        "/expenditures",
        json={"lot_id": lot_id, "quantity": 0, "reason": "OPERATION"},
        headers=admin_headers,
    )
    assert r.status_code == 422

    r = client.get("/lots/not-a-lot", headers=admin_headers)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "invalid_reference"

    r = client.get("/lots", params={"base": "NOWHERE"}, headers=admin_headers)
    assert r.status_code == 404


def test_inactive_actor_is_rejected(client, catalog_data, headers_for):
    h = headers_for(Actor(user_id="gone", role="admin", active=False))
    r = client.get("/purchases", headers=h)
    assert r.status_code == 403
    assert r.json()["error"]["reason"] == "role_insufficient"


def test_movements_export_csv(client, admin_headers, catalog_data):
    delivered = _deliver_radios(client, admin_headers, catalog_data)

    r = client.get("/movements/export", headers=admin_headers)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "movements_export.csv" in r.headers["content-disposition"]

    lines = r.text.strip().splitlines()
    assert lines[0].startswith("id,created_at,movement_type")
    assert len(lines) == 2
    assert ",PURCHASE,purchase," in lines[1]
    assert delivered["id"] in lines[1]


def test_balances_endpoint(client, admin_headers, catalog_data):
    _deliver_radios(client, admin_headers, catalog_data, quantity=5)
    r = client.get("/balances", params={"base_id": catalog_data["a"]}, headers=admin_headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["purchases"] == 5
    assert body["closing_balance"] == 5
