"""API key authentication, applied to every request as an interceptor."""

from __future__ import annotations

from typing import Mapping

from .logger import BoundLogger, create_logger
from .transport.request import RequestView

AUTHORIZATION_HEADER = "Authorization"


class ApiKeyAuth:
    """Adds ``Authorization: Bearer <key>`` unless the request already carries one."""

    def __init__(self, api_key: str | None, logger: BoundLogger | None = None) -> None:
        self.api_key = api_key
        self._logger = (logger or create_logger()).child("auth")

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)

    def add_http_headers(self, headers: Mapping[str, str] | None = None) -> dict[str, str]:
        merged = dict(headers or {})
        if self.has_credentials:
            merged[AUTHORIZATION_HEADER] = f"Bearer {self.api_key}"
        return merged

    def __call__(self, request: RequestView) -> None:
        if not self.has_credentials:
            return
        if request.header_values(AUTHORIZATION_HEADER):
            self._logger.trace("Authorization already set for %s %s", request.method, request.url)
            return
        request.header(AUTHORIZATION_HEADER, f"Bearer {self.api_key}")


__all__ = ["ApiKeyAuth"]
