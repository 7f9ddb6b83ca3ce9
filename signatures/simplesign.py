# signatures/simplesign.py
"""HTTP client for the SimpleSign e-signing service."""
import logging
from typing import Optional

import requests
from flask import current_app

logger = logging.getLogger(__name__)


class SimpleSignError(Exception):
    """SimpleSign could not be reached or rejected the call."""


class SimpleSignClient:
    def __init__(self, base_url: str, access_token: str, timeout: float = 30,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}

    @classmethod
    def from_app(cls) -> "SimpleSignClient":
        """Build a client from the app config, reusing ``app.extensions["simplesign_session"]``."""
        session = current_app.extensions.get("simplesign_session")
        if session is None:
            session = requests.Session()
            current_app.extensions["simplesign_session"] = session
        cfg = current_app.config
        return cls(
            cfg["SIMPLESIGN_API_URL"],
            cfg["SIMPLESIGN_ACCESS_TOKEN"],
            timeout=cfg["SIMPLESIGN_TIMEOUT"],
            session=session,
        )

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, headers=self.headers, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("SimpleSign %s %s failed: %s", method, path, exc)
            raise SimpleSignError(str(exc)) from exc
        return response

    def send_pdf_for_signature(self, pdf: bytes, recipient_email: str, recipient_name: Optional[str] = None,
                               title: str = "document.pdf") -> int:
        """Upload ``pdf`` for signing and return SimpleSign's document id."""
        data = {"recipient_email": recipient_email}
        if recipient_name:
            data["recipient_name"] = recipient_name
        response = self._request(
            "POST", "/documents",
            files={"file": (title, pdf, "application/pdf")},
            data=data,
        )
        try:
            document_id = int(response.json()["id"])
        except (ValueError, KeyError, TypeError) as exc:
            raise SimpleSignError("SimpleSign response did not contain a document id") from exc
        logger.info("Sent %s to SimpleSign as document %s", title, document_id)
        return document_id

    def download_signed_pdf(self, document_id: int) -> bytes:
        response = self._request("GET", f"/documents/{document_id}/download")
        if not response.content:
            raise SimpleSignError(f"SimpleSign returned an empty file for document {document_id}")
        return response.content
