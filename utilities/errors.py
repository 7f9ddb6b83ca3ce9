"""Domain errors raised by the keys service and rendered by the app factory."""
from typing import Any, Dict, List, Optional


class KeyServiceError(Exception):
    status_code = 500
    body_field = "reason"

    def __init__(self, reason: str, *, conflicting_keys: Optional[List[str]] = None, **extra: Any):
        super().__init__(reason)
        self.reason = reason
        self.conflicting_keys = conflicting_keys
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {self.body_field: self.reason}
        if self.conflicting_keys is not None:
            body["conflictingKeys"] = self.conflicting_keys
        body.update(self.extra)
        return body


class BadRequest(KeyServiceError):
    status_code = 400


class NotFound(KeyServiceError):
    status_code = 404


class Conflict(KeyServiceError):
    status_code = 409


class Forbidden(KeyServiceError):
    status_code = 403
    body_field = "error"
