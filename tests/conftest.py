import os
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app import create_app
from utilities.database import db, Key, KeyEvent, KeyLoan, KeySystem, Receipt


@pytest.fixture
def app():
    os.environ["ENV"] = "testing"

    application = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "AUTO_CREATE_SCHEMA": False,
        "MINIO_INIT_BUCKET": False,
        "LOG_FILE": None,
    })

    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()

    os.environ.pop("ENV", None)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def storage(app):
    """Replace the MinIO client with a mock for the lifetime of the test."""
    mock = MagicMock(name="minio")
    mock.presigned_get_object.return_value = "https://minio.local/signed-url"
    app.extensions["minio_client"] = mock
    return mock


@pytest.fixture
def key_system(app):
    system = KeySystem(system_code="ASSA-100", name="Main system", manufacturer="ASSA", type="MECHANICAL")
    db.session.add(system)
    db.session.commit()
    return SimpleNamespace(id=system.id, system_code=system.system_code)


@pytest.fixture
def apartment_keys(app, key_system):
    keys = [
        Key(key_name="LGH 1001 A", key_type="LGH", key_sequence_number=1, flex_number=1,
            rental_object_code="705-011-03-1001", key_system_id=key_system.id),
        Key(key_name="LGH 1001 B", key_type="LGH", key_sequence_number=2, flex_number=1,
            rental_object_code="705-011-03-1001", key_system_id=key_system.id),
        Key(key_name="Postbox 1001", key_type="PB", key_sequence_number=1,
            rental_object_code="705-011-03-1001"),
    ]
    db.session.add_all(keys)
    db.session.commit()
    return [SimpleNamespace(id=k.id, key_name=k.key_name) for k in keys]


@pytest.fixture
def master_key(app):
    key = Key(key_name="Master", key_type="HN", rental_object_code="705-011-03-1001")
    db.session.add(key)
    db.session.commit()
    return SimpleNamespace(id=key.id)


@pytest.fixture
def make_loan(app):
    """Create a loan over ``key_ids`` with a LOAN receipt, bypassing the HTTP layer."""

    def _make(key_ids, contact="P123456", picked_up=False, loan_type="TENANT"):
        loan = KeyLoan(contact=contact, loan_type=loan_type)
        loan.key_records = [db.session.get(Key, kid) for kid in key_ids]
        if picked_up:
            from utilities.database import utc_now
            loan.picked_up_at = utc_now()
        db.session.add(loan)
        db.session.flush()
        receipt = Receipt(key_loan_id=loan.id, receipt_type="LOAN", type="PHYSICAL")
        db.session.add(receipt)
        db.session.commit()
        return SimpleNamespace(id=loan.id, receipt_id=receipt.id)

    return _make


@pytest.fixture
def make_event(app):
    def _make(key_ids, type="ORDER", status="ORDERED"):
        event = KeyEvent(keys=list(key_ids), type=type, status=status)
        db.session.add(event)
        db.session.commit()
        return SimpleNamespace(id=event.id)

    return _make
