from utilities.database import db, KeyBundle


def _bundle(key_ids, name="Staircase A"):
    bundle = KeyBundle(name=name, keys=list(key_ids))
    db.session.add(bundle)
    db.session.commit()
    return bundle.id


def test_create_bundle_validates_keys(client, apartment_keys):
    response = client.post("/key-bundles", json={"name": "Bundle", "keys": [apartment_keys[0].id, "ghost"]})
    assert response.status_code == 400
    assert response.get_json()["missingKeys"] == ["ghost"]


def test_create_bundle_accepts_serialized_key_list(client, apartment_keys):
    response = client.post("/key-bundles", json={"name": "Bundle", "keys": f'["{apartment_keys[0].id}"]'})
    assert response.status_code == 201
    assert response.get_json()["content"]["keys"] == [apartment_keys[0].id]


def test_bundles_by_key(client, apartment_keys):
    bundle_id = _bundle([apartment_keys[0].id])
    _bundle([apartment_keys[1].id], name="Other")
    rows = client.get(f"/key-bundles/by-key/{apartment_keys[0].id}").get_json()["content"]
    assert [row["id"] for row in rows] == [bundle_id]


def test_keys_with_loan_status(client, apartment_keys, make_loan, make_event):
    bundle_id = _bundle([apartment_keys[0].id, apartment_keys[1].id])
    loan = make_loan([apartment_keys[0].id], contact="ACME AB", loan_type="MAINTENANCE")
    make_event([apartment_keys[1].id], type="ORDER", status="COMPLETED")
    latest = make_event([apartment_keys[1].id], type="LOST", status="ORDERED")

    response = client.get(f"/key-bundles/{bundle_id}/keys-with-loan-status")
    assert response.status_code == 200
    payload = response.get_json()["content"]
    assert payload["bundle"]["id"] == bundle_id
    keys = {row["id"]: row for row in payload["keys"]}
    assert keys[apartment_keys[0].id]["maintenanceLoan"]["id"] == loan.id
    assert keys[apartment_keys[0].id]["latestEvent"] is None
    assert keys[apartment_keys[1].id]["maintenanceLoan"] is None
    assert keys[apartment_keys[1].id]["latestEvent"]["id"] == latest.id


def test_tenant_loans_are_not_maintenance_loans(client, apartment_keys, make_loan):
    bundle_id = _bundle([apartment_keys[0].id])
    make_loan([apartment_keys[0].id], loan_type="TENANT")
    payload = client.get(f"/key-bundles/{bundle_id}/keys-with-loan-status").get_json()["content"]
    assert payload["keys"][0]["maintenanceLoan"] is None


def test_keys_with_loan_status_missing_bundle(client):
    response = client.get("/key-bundles/nope/keys-with-loan-status")
    assert response.status_code == 404


def test_search_bundles(client, apartment_keys):
    _bundle([apartment_keys[0].id], name="Laundry room")
    rows = client.get("/key-bundles/search?q=laundry").get_json()["content"]
    assert [row["name"] for row in rows] == ["Laundry room"]


def test_update_rejects_null_name_and_keys(client, apartment_keys):
    bundle_id = _bundle([apartment_keys[0].id])
    for field in ("name", "keys"):
        response = client.patch(f"/key-bundles/{bundle_id}", json={field: None})
        assert response.status_code == 400, field
    db.session.expire_all()
    bundle = db.session.get(KeyBundle, bundle_id)
    assert bundle.name == "Staircase A"
    assert bundle.keys == [apartment_keys[0].id]
