from datetime import datetime

from utilities.receipt_pdf import ReceiptData, receipt_file_name, receipt_number, render_receipt

WHEN = datetime(2026, 3, 14, 9, 26, 53)


def _keys(count):
    return [
        {"keyName": f"LGH {i}", "keyType": "LGH", "keySequenceNumber": i, "flexNumber": 1}
        for i in range(1, count + 1)
    ]


def test_receipt_number_prefixes():
    assert receipt_number("LOAN", WHEN) == "KL-20260314-092653"
    assert receipt_number("RETURN", WHEN) == "KR-20260314-092653"


def test_file_name_prefers_personal_number():
    data = ReceiptData(receipt_type="LOAN", personal_number="199001011234", contact="P1", issued_at=WHEN)
    assert receipt_file_name(data) == "key_loan_199001011234_20260314.pdf"
    data = ReceiptData(receipt_type="RETURN", contact="P1", issued_at=WHEN)
    assert receipt_file_name(data) == "key_return_P1_20260314.pdf"


def test_render_loan_receipt():
    pdf = render_receipt(ReceiptData(receipt_type="LOAN", keys=_keys(3), tenant_name="Anna", issued_at=WHEN))
    assert pdf.startswith(b"%PDF")


def test_long_key_lists_stay_on_one_page():
    pdf = render_receipt(ReceiptData(
        receipt_type="LOAN",
        loan_type="MAINTENANCE",
        contact="ACME AB",
        contact_person="Bo",
        rental_object_code="705-011",
        keys=_keys(200),
        issued_at=WHEN,
    ))
    assert b"/Count 1" in pdf
