from utilities.database import db, Key, Log


def test_healthcheck(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json == {"ok": True}


def test_create_key(client, key_system):
    response = client.post(
        "/keys",
        json={"keyName": "GAR 12", "keyType": "GAR", "keySequenceNumber": 1,
              "rentalObjectCode": "705-011-03-1001", "keySystemId": key_system.id},
        headers={"X-User-Name": "anna"},
    )
    assert response.status_code == 201
    key = response.get_json()["content"]
    assert key["keyType"] == "GAR"
    assert key["disposed"] is False

    entry = db.session.scalars(db.select(Log).where(Log.object_id == key["id"])).one()
    assert entry.user_name == "anna"
    assert entry.event_type == "creation"
    assert entry.object_type == "key"


def test_create_key_rejects_unknown_type(client):
    response = client.post("/keys", json={"keyName": "X", "keyType": "BOGUS"})
    assert response.status_code == 400
    payload = response.get_json()
    assert payload["reason"] == "Invalid request body"
    assert any(error["field"] == "keyType" for error in payload["errors"])


def test_create_key_with_unknown_key_system(client):
    response = client.post("/keys", json={"keyName": "X", "keyType": "LGH", "keySystemId": "missing"})
    assert response.status_code == 400


def test_get_missing_key_returns_404(client):
    response = client.get("/keys/does-not-exist")
    assert response.status_code == 404
    assert response.get_json() == {"reason": "Key not found"}


def test_list_keys_is_paginated_and_hides_disposed(client, apartment_keys):
    key = db.session.get(Key, apartment_keys[0].id)
    key.disposed = True
    db.session.commit()

    response = client.get("/keys?limit=1")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["_meta"] == {"totalRecords": 2, "page": 1, "limit": 1, "count": 1}
    rels = {link["rel"] for link in payload["_links"]}
    assert rels == {"self", "first", "last", "next"}

    response = client.get("/keys?includeDisposed=true")
    assert response.get_json()["_meta"]["totalRecords"] == 3


def test_search_requires_criteria(client):
    response = client.get("/keys/search")
    assert response.status_code == 400
    assert response.get_json()["reason"] == "At least one search parameter is required"


def test_search_by_query_and_filter(client, apartment_keys):
    response = client.get("/keys/search?q=1001&keyType=PB")
    assert response.status_code == 200
    names = [key["keyName"] for key in response.get_json()["content"]]
    assert names == ["Postbox 1001"]


def test_search_with_comparison_prefix(client, apartment_keys):
    response = client.get("/keys/search?keySequenceNumber=>=2")
    names = [key["keyName"] for key in response.get_json()["content"]]
    assert names == ["LGH 1001 B"]


def test_search_query_too_short(client):
    response = client.get("/keys/search?q=ab")
    assert response.status_code == 400


def test_keys_by_rental_object_with_loans(client, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    response = client.get("/keys/by-rental-object/705-011-03-1001?includeLoans=true&includeEvents=true")
    assert response.status_code == 200
    rows = {row["id"]: row for row in response.get_json()["content"]}
    assert rows[apartment_keys[0].id]["activeLoan"]["id"] == loan.id
    assert rows[apartment_keys[1].id]["activeLoan"] is None
    assert rows[apartment_keys[1].id]["latestEvent"] is None


def test_protected_key_cannot_be_deleted(client, master_key):
    response = client.delete(f"/keys/{master_key.id}")
    assert response.status_code == 403
    assert response.get_json()["conflictingKeys"] == [master_key.id]
    assert db.session.get(Key, master_key.id) is not None


def test_loaned_key_cannot_be_deleted(client, apartment_keys, make_loan):
    make_loan([apartment_keys[0].id])
    response = client.delete(f"/keys/{apartment_keys[0].id}")
    assert response.status_code == 409
    assert response.get_json()["reason"] == "Cannot delete keys with active loans"


def test_delete_key(client, apartment_keys):
    response = client.delete(f"/keys/{apartment_keys[2].id}")
    assert response.status_code == 204
    db.session.expire_all()
    assert db.session.get(Key, apartment_keys[2].id) is None


def test_bulk_delete_rejects_batches_with_protected_keys(client, apartment_keys, master_key):
    response = client.post("/keys/bulk-delete", json={"keyIds": [apartment_keys[0].id, master_key.id]})
    assert response.status_code == 403
    db.session.expire_all()
    assert db.session.get(Key, apartment_keys[0].id) is not None


def test_bulk_delete_rejects_loaned_keys(client, apartment_keys, make_loan):
    make_loan([apartment_keys[1].id])
    response = client.post("/keys/bulk-delete", json={"keyIds": [k.id for k in apartment_keys]})
    assert response.status_code == 409
    assert response.get_json()["conflictingKeys"] == [apartment_keys[1].id]


def test_bulk_delete(client, apartment_keys):
    response = client.post("/keys/bulk-delete", json={"keyIds": [apartment_keys[0].id, apartment_keys[1].id]})
    assert response.status_code == 200
    assert response.get_json()["content"] == {"deletedCount": 2}


def test_bulk_update_flex(client, apartment_keys):
    response = client.post("/keys/bulk-update-flex", json={"rentalObjectCode": "705-011-03-1001", "flexNumber": 3})
    assert response.status_code == 200
    assert response.get_json()["content"] == {"updatedCount": 3}
    db.session.expire_all()
    assert {db.session.get(Key, k.id).flex_number for k in apartment_keys} == {3}


def test_bulk_update_flex_validates_range(client, apartment_keys):
    response = client.post("/keys/bulk-update-flex", json={"rentalObjectCode": "705-011-03-1001", "flexNumber": 4})
    assert response.status_code == 400


def test_dispose_key(client, apartment_keys, make_loan):
    make_loan([apartment_keys[0].id])
    assert client.post(f"/keys/{apartment_keys[0].id}/dispose").status_code == 409

    response = client.post(f"/keys/{apartment_keys[2].id}/dispose")
    assert response.status_code == 200
    assert response.get_json()["content"]["disposed"] is True


def test_patch_cannot_dispose_loaned_key(client, apartment_keys, make_loan):
    make_loan([apartment_keys[0].id])
    response = client.patch(f"/keys/{apartment_keys[0].id}", json={"disposed": True})
    assert response.status_code == 409
    assert response.get_json()["conflictingKeys"] == [apartment_keys[0].id]
    db.session.expire_all()
    assert db.session.get(Key, apartment_keys[0].id).disposed is False

    response = client.patch(f"/keys/{apartment_keys[2].id}", json={"disposed": True})
    assert response.status_code == 200
    assert response.get_json()["content"]["disposed"] is True


def test_patch_rejects_null_for_required_fields(client, apartment_keys):
    for field in ("keyName", "keyType", "disposed"):
        response = client.patch(f"/keys/{apartment_keys[0].id}", json={field: None})
        assert response.status_code == 400
        assert response.get_json()["errors"][0]["field"] == field

    response = client.patch(f"/keys/{apartment_keys[0].id}", json={"flexNumber": None})
    assert response.status_code == 200
    assert response.get_json()["content"]["flexNumber"] is None
