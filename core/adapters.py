"""
REST adapters the core service uses to talk to the keys service.

Adapters never raise for HTTP or network failures. Every call returns a
``Result``: ``ok(data)`` on success, ``fail(err)`` otherwise, where ``err`` is
one of the strings produced by ``map_fetch_error``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

import requests

logger = logging.getLogger(__name__)

T = TypeVar("T")

BAD_REQUEST = "bad-request"
UNAUTHORIZED = "unauthorized"
FORBIDDEN = "forbidden"
NOT_FOUND = "not-found"
CONFLICT = "conflict"
UNKNOWN = "unknown"

STATUS_ERRORS = {
    400: BAD_REQUEST,
    401: UNAUTHORIZED,
    403: FORBIDDEN,
    404: NOT_FOUND,
    409: CONFLICT,
}
ERROR_STATUSES = {err: status for status, err in STATUS_ERRORS.items()}


@dataclass(frozen=True)
class Result(Generic[T]):
    ok: bool
    data: Optional[T] = None
    err: Optional[str] = None
    status_code: Optional[int] = None
    body: Optional[Any] = None


def ok(data: T) -> Result[T]:
    return Result(ok=True, data=data)


def fail(err: str, status_code: Optional[int] = None, body: Optional[Any] = None) -> Result[Any]:
    return Result(ok=False, err=err, status_code=status_code, body=body)


def map_fetch_error(error: Union[requests.Response, requests.RequestException, int, None]) -> str:
    """Translate an HTTP failure into a tagged error string."""
    status = None
    if isinstance(error, int):
        status = error
    elif isinstance(error, requests.Response):
        status = error.status_code
    elif isinstance(error, requests.HTTPError) and error.response is not None:
        status = error.response.status_code
    return STATUS_ERRORS.get(status, UNKNOWN)


def http_status_for(err: Optional[str]) -> int:
    return ERROR_STATUSES.get(err, 500)


class KeysServiceClient:
    """Thin JSON client for the keys service."""

    def __init__(self, base_url: str, timeout: float = 10, session: Optional[requests.Session] = None,
                 user_name: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.user_name = user_name

    def _request(self, method: str, path: str, **kwargs) -> Result[Any]:
        url = f"{self.base_url}{path}"
        headers = kwargs.pop("headers", {})
        if self.user_name:
            headers.setdefault("X-User-Name", self.user_name)
        try:
            response = self.session.request(method, url, timeout=self.timeout, headers=headers, **kwargs)
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            return fail(map_fetch_error(exc))

        if not response.ok:
            err = map_fetch_error(response)
            logger.warning("%s %s returned %s (%s)", method, url, response.status_code, err)
            return fail(err, response.status_code, _safe_json(response))

        if response.status_code == 204 or not response.content:
            return ok(None)
        body = _safe_json(response)
        # keys service wraps single payloads in {"content": ...}; lists keep their envelope
        if isinstance(body, dict) and set(body) == {"content"}:
            return ok(body["content"])
        return ok(body)

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Result[Any]:
        return self._request("GET", path, params=params)

    def post_json(self, path: str, payload: Any) -> Result[Any]:
        return self._request("POST", path, json=payload)

    def patch_json(self, path: str, payload: Any) -> Result[Any]:
        return self._request("PATCH", path, json=payload)

    def delete_json(self, path: str) -> Result[Any]:
        return self._request("DELETE", path)


def _safe_json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _flag(value: Optional[bool]) -> Optional[str]:
    if value is None:
        return None
    return "true" if value else "false"


def _drop_none(params: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in params.items() if v is not None}


class KeysApi:
    def __init__(self, client: KeysServiceClient):
        self.client = client

    def list(self, page: int = 1, limit: int = 20) -> Result[Dict[str, Any]]:
        return self.client.get_json("/keys", {"page": page, "limit": limit})

    def search(self, params: Dict[str, Any]) -> Result[Dict[str, Any]]:
        return self.client.get_json("/keys/search", params)

    def get(self, key_id: str) -> Result[Dict[str, Any]]:
        return self.client.get_json(f"/keys/{key_id}")

    def by_rental_object(self, code: str, include_loans: bool = False,
                         include_events: bool = False) -> Result[List[Dict[str, Any]]]:
        params = {"includeLoans": _flag(include_loans), "includeEvents": _flag(include_events)}
        return self.client.get_json(f"/keys/by-rental-object/{code}", params)


class KeyLoansApi:
    def __init__(self, client: KeysServiceClient):
        self.client = client

    def by_rental_object(self, code: str, contact: Optional[str] = None, returned: Optional[bool] = None,
                         include_receipts: bool = False) -> Result[List[Dict[str, Any]]]:
        params = _drop_none({
            "contact": contact,
            "returned": _flag(returned),
            "includeReceipts": _flag(include_receipts),
        })
        return self.client.get_json(f"/key-loans/by-rental-object/{code}", params)

    def get(self, loan_id: str) -> Result[Dict[str, Any]]:
        return self.client.get_json(f"/key-loans/{loan_id}")

    def loan(self, payload: Dict[str, Any]) -> Result[Dict[str, Any]]:
        return self.client.post_json("/key-loans/loan", payload)

    def return_keys(self, payload: Dict[str, Any]) -> Result[Dict[str, Any]]:
        return self.client.post_json("/key-loans/return", payload)


class ReceiptsApi:
    def __init__(self, client: KeysServiceClient):
        self.client = client

    def by_key_loan(self, loan_id: str) -> Result[List[Dict[str, Any]]]:
        return self.client.get_json(f"/receipts/by-key-loan/{loan_id}")

    def download_url(self, receipt_id: str) -> Result[Dict[str, Any]]:
        return self.client.get_json(f"/receipts/{receipt_id}/download")


class KeyBundlesApi:
    def __init__(self, client: KeysServiceClient):
        self.client = client

    def with_loan_status(self, bundle_id: str) -> Result[Dict[str, Any]]:
        return self.client.get_json(f"/key-bundles/{bundle_id}/keys-with-loan-status")


class KeysAdapter:
    """Entry point bundling the per-resource APIs over one client."""

    def __init__(self, client: KeysServiceClient):
        self.client = client
        self.keys = KeysApi(client)
        self.key_loans = KeyLoansApi(client)
        self.receipts = ReceiptsApi(client)
        self.key_bundles = KeyBundlesApi(client)
