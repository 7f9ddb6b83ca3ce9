import base64
from io import BytesIO

from utilities.database import db, Key, KeyEvent, KeyLoan, Receipt

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"


def _upload(client, receipt_id, data=PDF_BYTES, content_type="application/pdf", filename="signed.pdf"):
    return client.post(
        f"/receipts/{receipt_id}/upload",
        data={"file": (BytesIO(data), filename, content_type)},
        content_type="multipart/form-data",
    )


def test_create_receipt_requires_existing_loan(client):
    response = client.post("/receipts", json={"keyLoanId": "missing", "receiptType": "LOAN"})
    assert response.status_code == 404


def test_create_and_list_receipts(client, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    response = client.post("/receipts", json={"keyLoanId": loan.id, "receiptType": "RETURN", "type": "DIGITAL"})
    assert response.status_code == 201
    assert response.get_json()["content"]["type"] == "DIGITAL"

    rows = client.get(f"/receipts/by-key-loan/{loan.id}").get_json()["content"]
    assert {row["receiptType"] for row in rows} == {"LOAN", "RETURN"}


def test_upload_activates_loan_and_completes_events(client, storage, apartment_keys, make_loan, make_event):
    loan = make_loan([apartment_keys[0].id, apartment_keys[1].id])
    ordered = make_event([apartment_keys[0].id], type="ORDER", status="ORDERED")
    received = make_event([apartment_keys[1].id], type="FLEX", status="RECEIVED")
    unrelated = make_event([apartment_keys[2].id], type="ORDER", status="ORDERED")

    response = _upload(client, loan.receipt_id)
    assert response.status_code == 200
    result = response.get_json()["content"]
    assert result["keyLoanActivated"] is True
    assert result["keyEventsCompleted"] == 2
    assert result["fileId"].startswith(f"{loan.receipt_id}-")
    assert result["fileId"].endswith(".pdf")

    kwargs = storage.put_object.call_args.kwargs
    assert kwargs["object_name"] == result["fileId"]
    assert kwargs["length"] == len(PDF_BYTES)
    assert kwargs["content_type"] == "application/pdf"
    assert kwargs["metadata"]["receipt-id"] == loan.receipt_id
    assert kwargs["metadata"]["receipt-type"] == "LOAN"
    assert kwargs["metadata"]["key-loan-id"] == loan.id

    db.session.expire_all()
    assert db.session.get(KeyLoan, loan.id).picked_up_at is not None
    assert db.session.get(Receipt, loan.receipt_id).file_id == result["fileId"]
    assert db.session.get(KeyEvent, ordered.id).status == "COMPLETED"
    assert db.session.get(KeyEvent, received.id).status == "COMPLETED"
    assert db.session.get(KeyEvent, unrelated.id).status == "ORDERED"
    # completing the FLEX event re-keys the lock
    assert db.session.get(Key, apartment_keys[1].id).flex_number == 2


def test_second_upload_does_not_reactivate(client, storage, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    _upload(client, loan.receipt_id)
    db.session.expire_all()
    picked_up = db.session.get(KeyLoan, loan.id).picked_up_at

    response = _upload(client, loan.receipt_id)
    assert response.status_code == 200
    assert response.get_json()["content"]["keyLoanActivated"] is False
    db.session.expire_all()
    assert db.session.get(KeyLoan, loan.id).picked_up_at == picked_up


def test_return_receipt_upload_does_not_touch_loan(client, storage, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    response = client.post("/receipts", json={"keyLoanId": loan.id, "receiptType": "RETURN"})
    receipt_id = response.get_json()["content"]["id"]

    result = _upload(client, receipt_id).get_json()["content"]
    assert result["keyLoanActivated"] is False
    db.session.expire_all()
    assert db.session.get(KeyLoan, loan.id).picked_up_at is None


def test_upload_rejects_non_pdf(client, storage, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    response = _upload(client, loan.receipt_id, data=b"hello", content_type="text/plain", filename="a.txt")
    assert response.status_code == 400
    storage.put_object.assert_not_called()


def test_upload_rejects_oversized_file(app, client, storage, apartment_keys, make_loan):
    app.config["RECEIPT_MAX_UPLOAD_BYTES"] = 10
    loan = make_loan([apartment_keys[0].id])
    response = _upload(client, loan.receipt_id)
    assert response.status_code == 400
    assert "too large" in response.get_json()["reason"]


def test_upload_requires_file(client, storage, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    response = client.post(f"/receipts/{loan.receipt_id}/upload", data={}, content_type="multipart/form-data")
    assert response.status_code == 400


def test_upload_to_missing_receipt(client, storage):
    assert _upload(client, "missing").status_code == 404


def test_upload_base64(client, storage, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    response = client.post(
        f"/receipts/{loan.receipt_id}/upload-base64",
        json={"fileContent": base64.b64encode(PDF_BYTES).decode(), "fileName": "scan.pdf"},
    )
    assert response.status_code == 200
    assert response.get_json()["content"]["keyLoanActivated"] is True


def test_upload_storage_failure_returns_500(client, storage, apartment_keys, make_loan):
    storage.put_object.side_effect = RuntimeError("minio down")
    loan = make_loan([apartment_keys[0].id])
    response = _upload(client, loan.receipt_id)
    assert response.status_code == 500
    assert response.get_json() == {"error": "Failed to upload file", "message": "minio down"}
    db.session.expire_all()
    assert db.session.get(KeyLoan, loan.id).picked_up_at is None


def test_download_requires_file(client, storage, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    response = client.get(f"/receipts/{loan.receipt_id}/download")
    assert response.status_code == 404


def test_download_returns_week_long_presigned_url(client, storage, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    file_id = _upload(client, loan.receipt_id).get_json()["content"]["fileId"]

    response = client.get(f"/receipts/{loan.receipt_id}/download")
    assert response.status_code == 200
    payload = response.get_json()["content"]
    assert payload == {"url": "https://minio.local/signed-url", "expiresIn": 604800, "fileId": file_id}
    expires = storage.presigned_get_object.call_args.kwargs["expires"]
    assert expires.total_seconds() == 604800


def test_delete_receipt_tolerates_storage_failure(client, storage, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    _upload(client, loan.receipt_id)
    storage.remove_object.side_effect = RuntimeError("gone")

    response = client.delete(f"/receipts/{loan.receipt_id}")
    assert response.status_code == 204
    db.session.expire_all()
    assert db.session.get(Receipt, loan.receipt_id) is None


def test_render_receipt_pdf(client, apartment_keys, make_loan):
    loan = make_loan([k.id for k in apartment_keys], contact="P123")
    response = client.get(f"/receipts/{loan.receipt_id}/pdf?tenantName=Anna%20Svensson&personalNumber=199001011234")
    assert response.status_code == 200
    assert response.mimetype == "application/pdf"
    assert response.data.startswith(b"%PDF")
    disposition = response.headers["Content-Disposition"]
    assert disposition.startswith('attachment; filename="key_loan_199001011234_')


def test_render_receipt_pdf_escapes_file_name(client, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    response = client.get(f"/receipts/{loan.receipt_id}/pdf", query_string={"personalNumber": 'x"; filename=evil.exe'})
    assert response.status_code == 200
    disposition = response.headers["Content-Disposition"]
    assert disposition.startswith('attachment; filename="key_loan_x\\"; filename=evil.exe_')
    assert disposition.endswith('.pdf"')
