# key_loans/services.py
"""Queries shared by every module that needs to know whether a key is out on loan."""
from typing import Iterable, List, Optional

from utilities.database import db, Key, KeyLoan, key_loan_keys
from utilities.errors import NotFound


def unique_ids(ids: Iterable[str]) -> List[str]:
    """Drop duplicates while keeping the caller's order."""
    return list(dict.fromkeys(ids))


def load_keys(key_ids: Iterable[str]) -> List[Key]:
    """Fetch keys in request order, or raise ``NotFound`` listing the unknown ids."""
    ids = unique_ids(key_ids)
    if not ids:
        return []
    found = {key.id: key for key in db.session.scalars(db.select(Key).where(Key.id.in_(ids)))}
    missing = [kid for kid in ids if kid not in found]
    if missing:
        raise NotFound("One or more keys were not found", missingKeys=missing)
    return [found[kid] for kid in ids]


def active_loans_for_keys(key_ids: Iterable[str], exclude_loan_ids: Optional[Iterable[str]] = None) -> List[KeyLoan]:
    ids = unique_ids(key_ids)
    if not ids:
        return []
    stmt = (
        db.select(KeyLoan)
        .join(key_loan_keys, key_loan_keys.c.key_loan_id == KeyLoan.id)
        .where(key_loan_keys.c.key_id.in_(ids), KeyLoan.returned_at.is_(None))
        .distinct()
        .order_by(KeyLoan.created_at)
    )
    excluded = list(exclude_loan_ids or [])
    if excluded:
        stmt = stmt.where(KeyLoan.id.not_in(excluded))
    return list(db.session.scalars(stmt))


def find_conflicting_keys(key_ids: Iterable[str], exclude_loan_ids: Optional[Iterable[str]] = None) -> List[str]:
    """Ids among ``key_ids`` that already sit in another active loan."""
    ids = unique_ids(key_ids)
    loaned = {kid for loan in active_loans_for_keys(ids, exclude_loan_ids) for kid in loan.key_ids}
    return [kid for kid in ids if kid in loaned]


def active_loan_for_key(key_id: str, loan_type: Optional[str] = None) -> Optional[KeyLoan]:
    loans = active_loans_for_keys([key_id])
    if loan_type:
        loans = [loan for loan in loans if loan.loan_type == loan_type]
    return loans[-1] if loans else None


def get_loan_or_404(loan_id: str) -> KeyLoan:
    loan = db.session.get(KeyLoan, loan_id)
    if loan is None:
        raise NotFound("Key loan not found")
    return loan
