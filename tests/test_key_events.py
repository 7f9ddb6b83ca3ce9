from utilities.database import db, Key, KeyEvent


def test_create_event(client, apartment_keys):
    response = client.post("/key-events", json={"keys": [apartment_keys[0].id], "type": "ORDER", "workOrderId": "WO-1"})
    assert response.status_code == 201
    event = response.get_json()["content"]
    assert event["status"] == "ORDERED"
    assert event["workOrderId"] == "WO-1"


def test_create_event_accepts_json_string_keys(client, apartment_keys):
    response = client.post("/key-events", json={"keys": f'["{apartment_keys[0].id}"]', "type": "LOST"})
    assert response.status_code == 201
    assert response.get_json()["content"]["keys"] == [apartment_keys[0].id]


def test_incomplete_event_blocks_new_event(client, apartment_keys, make_event):
    make_event([apartment_keys[0].id], status="RECEIVED")
    response = client.post(
        "/key-events", json={"keys": [apartment_keys[0].id, apartment_keys[1].id], "type": "FLEX"}
    )
    assert response.status_code == 409
    payload = response.get_json()
    assert payload["reason"] == "One or more keys have incomplete events"
    assert payload["conflictingKeys"] == [apartment_keys[0].id]


def test_completed_event_does_not_block(client, apartment_keys, make_event):
    make_event([apartment_keys[0].id], status="COMPLETED")
    response = client.post("/key-events", json={"keys": [apartment_keys[0].id], "type": "ORDER"})
    assert response.status_code == 201


def test_completing_flex_event_increments_flex_number(client, apartment_keys, make_event):
    event = make_event([apartment_keys[0].id, apartment_keys[2].id], type="FLEX")
    response = client.patch(f"/key-events/{event.id}", json={"status": "COMPLETED"})
    assert response.status_code == 200
    assert response.get_json()["content"]["status"] == "COMPLETED"

    db.session.expire_all()
    assert db.session.get(Key, apartment_keys[0].id).flex_number == 2
    # keys without a flex number start counting at 1
    assert db.session.get(Key, apartment_keys[2].id).flex_number == 1

    # completing twice does not bump again
    client.patch(f"/key-events/{event.id}", json={"status": "COMPLETED"})
    db.session.expire_all()
    assert db.session.get(Key, apartment_keys[0].id).flex_number == 2


def test_events_by_key_respects_limit(client, apartment_keys, make_event):
    for _ in range(3):
        make_event([apartment_keys[0].id], status="COMPLETED")
    make_event([apartment_keys[1].id])

    rows = client.get(f"/key-events/by-key/{apartment_keys[0].id}?limit=2").get_json()["content"]
    assert len(rows) == 2
    assert all(apartment_keys[0].id in row["keys"] for row in rows)


def test_get_missing_event(client):
    assert client.get("/key-events/nope").status_code == 404


def test_completed_event_cannot_be_reopened(client, apartment_keys, make_event):
    event = make_event([apartment_keys[0].id], type="FLEX")
    client.patch(f"/key-events/{event.id}", json={"status": "COMPLETED"})

    response = client.patch(f"/key-events/{event.id}", json={"status": "ORDERED", "workOrderId": "WO-9"})
    assert response.status_code == 400
    assert "reopened" in response.get_json()["reason"]

    client.patch(f"/key-events/{event.id}", json={"status": "COMPLETED"})
    db.session.expire_all()
    stored = db.session.get(KeyEvent, event.id)
    assert stored.status == "COMPLETED"
    assert stored.work_order_id is None
    assert db.session.get(Key, apartment_keys[0].id).flex_number == 2


def test_update_rejects_null_status(client, apartment_keys, make_event):
    event = make_event([apartment_keys[0].id])
    response = client.patch(f"/key-events/{event.id}", json={"status": None})
    assert response.status_code == 400
    assert response.get_json()["errors"][0]["field"] == "status"
