# vendor_dispatch/errors.py
from __future__ import annotations

from typing import Optional


class DispatchError(Exception):
    """Base class for errors raised by the dispatch core."""


class JobNotFound(DispatchError):
    def __init__(self, request_id: str):
        super().__init__(f"Job not found: {request_id}")
        self.request_id = request_id


class DispatchFailure(DispatchError):
    """
    Vendor unreachable, timed out, answered with a non-success status or with a
    body we cannot interpret. Always retryable.
    """

    def __init__(self, vendor: str, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        self.vendor = vendor
        self.detail = detail
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.detail} (vendor={self.vendor} status={self.status_code})"
        return f"{self.detail} (vendor={self.vendor})"


class RetriesExhausted(DispatchError):
    def __init__(self, request_id: str, last_failure: str):
        super().__init__(f"Max retries reached: {last_failure}")
        self.request_id = request_id
        self.last_failure = last_failure


class InfrastructureError(DispatchError):
    """Store or queue unreachable."""


class SanitizationError(DispatchError):
    pass
