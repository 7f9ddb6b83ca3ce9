import base64
from unittest.mock import MagicMock

import pytest
import requests

from utilities.database import db, KeyLoan, Receipt, Signature

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"


@pytest.fixture
def simplesign(app):
    """Replace the SimpleSign HTTP session with a mock."""
    session = MagicMock(name="simplesign")
    app.extensions["simplesign_session"] = session
    return session


def _reply(json_body=None, data=b""):
    response = MagicMock(spec=requests.Response)
    response.json.return_value = json_body
    response.content = data
    return response


def _signature(receipt_id, document_id, status="sent", email="anna@example.com"):
    signature = Signature(resource_type="receipt", resource_id=receipt_id, simple_sign_document_id=document_id,
                          recipient_email=email, status=status)
    db.session.add(signature)
    db.session.commit()
    return signature.id


def test_create_get_and_list_signatures(client, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    response = client.post("/signatures", json={
        "resourceType": "receipt",
        "resourceId": loan.receipt_id,
        "simpleSignDocumentId": 101,
        "recipientEmail": "anna@example.com",
        "recipientName": "Anna Svensson",
    })
    assert response.status_code == 201
    created = response.get_json()["content"]
    assert created["status"] == "sent"
    assert created["simpleSignDocumentId"] == 101

    fetched = client.get(f"/signatures/{created['id']}").get_json()["content"]
    assert fetched["recipientName"] == "Anna Svensson"

    listed = client.get(f"/signatures/resource/receipt/{loan.receipt_id}").get_json()["content"]
    assert [row["id"] for row in listed] == [created["id"]]
    assert client.get("/signatures/resource/receipt/other").get_json()["content"] == []


def test_create_signature_for_missing_receipt(client):
    response = client.post("/signatures", json={
        "resourceType": "receipt", "resourceId": "missing",
        "simpleSignDocumentId": 1, "recipientEmail": "anna@example.com",
    })
    assert response.status_code == 404


def test_create_signature_rejects_duplicate_document(client, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    _signature(loan.receipt_id, 7)
    response = client.post("/signatures", json={
        "resourceType": "receipt", "resourceId": loan.receipt_id,
        "simpleSignDocumentId": 7, "recipientEmail": "anna@example.com",
    })
    assert response.status_code == 409


def test_create_signature_validates_body(client):
    response = client.post("/signatures", json={"resourceType": "keyLoan", "resourceId": "x",
                                                "simpleSignDocumentId": 1, "recipientEmail": "not-an-email"})
    assert response.status_code == 400
    fields = {error["field"] for error in response.get_json()["errors"]}
    assert {"resourceType", "recipientEmail"} <= fields


def test_get_missing_signature(client):
    assert client.get("/signatures/missing").status_code == 404


def test_send_for_signature(client, simplesign, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    simplesign.request.return_value = _reply({"id": 42})

    response = client.post("/signatures/send", json={
        "resourceType": "receipt",
        "resourceId": loan.receipt_id,
        "recipientEmail": "anna@example.com",
        "pdfBase64": "data:application/pdf;base64," + base64.b64encode(PDF_BYTES).decode(),
    })
    assert response.status_code == 201
    assert response.get_json()["content"]["simpleSignDocumentId"] == 42

    args, kwargs = simplesign.request.call_args
    assert args == ("POST", "https://api.simplesign.io/v2/documents")
    assert kwargs["files"]["file"][1] == PDF_BYTES
    assert kwargs["data"] == {"recipient_email": "anna@example.com"}


def test_send_rejects_invalid_base64(client, simplesign, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    response = client.post("/signatures/send", json={
        "resourceType": "receipt", "resourceId": loan.receipt_id,
        "recipientEmail": "anna@example.com", "pdfBase64": "not base64!",
    })
    assert response.status_code == 400
    simplesign.request.assert_not_called()


def test_send_reports_simplesign_failure(client, simplesign, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    simplesign.request.side_effect = requests.ConnectionError("refused")
    response = client.post("/signatures/send", json={
        "resourceType": "receipt", "resourceId": loan.receipt_id,
        "recipientEmail": "anna@example.com", "pdfBase64": base64.b64encode(PDF_BYTES).decode(),
    })
    assert response.status_code == 500
    assert response.get_json()["error"] == "Failed to send signature request"
    assert db.session.scalar(db.select(db.func.count()).select_from(Signature)) == 0


def test_signed_webhook_stores_pdf_and_activates_loan(client, storage, simplesign, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    older = _signature(loan.receipt_id, 10, email="old@example.com")
    current = _signature(loan.receipt_id, 11)
    simplesign.request.return_value = _reply(data=PDF_BYTES)

    response = client.post("/webhooks/simplesign", json={"id": 11, "status": "signed"})
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["message"] == "Webhook processed successfully"
    assert payload["fileId"] == f"receipt-{loan.receipt_id}-signed.pdf"
    assert payload["keyLoanActivated"] is True

    assert simplesign.request.call_args.args == ("GET", "https://api.simplesign.io/v2/documents/11/download")
    kwargs = storage.put_object.call_args.kwargs
    assert kwargs["object_name"] == payload["fileId"]
    assert kwargs["metadata"]["signed"] == "true"

    db.session.expire_all()
    assert db.session.get(Receipt, loan.receipt_id).file_id == payload["fileId"]
    assert db.session.get(KeyLoan, loan.id).picked_up_at is not None
    signed = db.session.get(Signature, current)
    assert signed.status == "signed"
    assert signed.completed_at is not None
    assert db.session.get(Signature, older).status == "superseded"


def test_webhook_for_existing_scan_only_updates_status(client, storage, simplesign, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    receipt = db.session.get(Receipt, loan.receipt_id)
    receipt.file_id = "scan.pdf"
    db.session.commit()
    signature_id = _signature(loan.receipt_id, 12)

    response = client.post("/webhooks/simplesign", json={"id": 12, "status": "signed"})
    assert response.status_code == 200
    assert response.get_json()["fileId"] == "scan.pdf"
    simplesign.request.assert_not_called()
    storage.put_object.assert_not_called()
    db.session.expire_all()
    assert db.session.get(Signature, signature_id).status == "signed"


def test_webhook_status_change_without_signing(client, simplesign, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    signature_id = _signature(loan.receipt_id, 13)
    response = client.post("/webhooks/simplesign", json={"id": 13, "status": "rejected"})
    assert response.status_code == 200
    db.session.expire_all()
    signature = db.session.get(Signature, signature_id)
    assert signature.status == "rejected"
    assert signature.last_synced_at is not None
    assert signature.completed_at is None


def test_webhook_for_unknown_document(client):
    response = client.post("/webhooks/simplesign", json={"id": 999, "status": "signed"})
    assert response.status_code == 404


def test_webhook_download_failure_keeps_receipt_untouched(client, storage, simplesign, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    signature_id = _signature(loan.receipt_id, 14)
    simplesign.request.side_effect = requests.ConnectionError("timeout")

    response = client.post("/webhooks/simplesign", json={"id": 14, "status": "signed"})
    assert response.status_code == 500
    assert response.get_json()["reason"] == "download-pdf"
    storage.put_object.assert_not_called()
    db.session.expire_all()
    assert db.session.get(Signature, signature_id).status == "sent"
    assert db.session.get(Receipt, loan.receipt_id).file_id is None
    assert db.session.get(KeyLoan, loan.id).picked_up_at is None


def test_webhook_upload_failure(client, storage, simplesign, apartment_keys, make_loan):
    loan = make_loan([apartment_keys[0].id])
    _signature(loan.receipt_id, 15)
    simplesign.request.return_value = _reply(data=PDF_BYTES)
    storage.put_object.side_effect = RuntimeError("minio down")

    response = client.post("/webhooks/simplesign", json={"id": 15, "status": "signed"})
    assert response.status_code == 500
    assert response.get_json()["reason"] == "upload-file"
    db.session.expire_all()
    assert db.session.get(Receipt, loan.receipt_id).file_id is None


def test_webhook_requires_configured_secret(app, client, apartment_keys, make_loan):
    app.config["SIMPLESIGN_WEBHOOK_SECRET"] = "s3cret"
    loan = make_loan([apartment_keys[0].id])
    signature_id = _signature(loan.receipt_id, 16)

    response = client.post("/webhooks/simplesign", json={"id": 16, "status": "rejected"},
                           headers={"webhookSecret": "wrong"})
    assert response.status_code == 401
    assert response.get_json() == {"reason": "Unauthorized"}

    response = client.post("/webhooks/simplesign", json={"id": 16, "status": "rejected"},
                           headers={"webhookSecret": "s3cret"})
    assert response.status_code == 200
    db.session.expire_all()
    assert db.session.get(Signature, signature_id).status == "rejected"
