"""HTTP client for the hosted backend: RPC, table queries, functions and the change feed."""
from typing import Any, Dict, List, Optional

import requests

from .config import REQUEST_TIMEOUT


class RemoteError(Exception):
    """A request reached the backend and failed, or never got a usable answer."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class BaaSClient:
    def __init__(self, base_url: str, anon_key: str, session: Any = None, timeout: float = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.session = session or requests.Session()
        self.timeout = timeout
        self.access_token: Optional[str] = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "apikey": self.anon_key}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        resp = self.session.request(
            method,
            f"{self.base_url}{path}",
            params=params,
            json=json,
            headers=self._headers(),
            timeout=self.timeout,
        )
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if resp.status_code >= 400:
            message = payload.get("error") if isinstance(payload, dict) else None
            raise RemoteError(message or f"HTTP {resp.status_code}", resp.status_code, payload)
        return payload

    def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("POST", f"/rest/v1/rpc/{name}", json=params or {})

    def select(
        self, table: str, filters: Optional[Dict[str, Any]] = None, order: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        params = {column: f"eq.{_format_value(value)}" for column, value in (filters or {}).items()}
        if order:
            params["order"] = order
        return self._request("GET", f"/rest/v1/{table}", params=params) or []

    def upsert(self, table: str, row: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self._request("POST", f"/rest/v1/{table}", json=row) or []

    def update(self, table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        params = {column: f"eq.{_format_value(value)}" for column, value in filters.items()}
        return self._request("PATCH", f"/rest/v1/{table}", params=params, json=values) or []

    def invoke(self, function: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/functions/v1/{function}", json=body)

    def changes(self, after: Optional[int] = None) -> Dict[str, Any]:
        params = {"after": after} if after is not None else None
        return self._request("GET", "/realtime/v1/changes", params=params)


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
