"""HTTP client for a running proxyfront broker."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from proxyfront.abi import parse_hex, to_hex
from proxyfront.schemas import CallResponse, DeployResponse, LogEntry, ProxyState

logger = logging.getLogger(__name__)

DEFAULT_BROKER_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 30.0  # seconds


class RemoteCallError(Exception):
    """Raised when the broker answers with an error status."""

    def __init__(self, status_code: int, detail: str, error_code: str | None = None, data: str | None = None):
        super().__init__(f"{status_code} {error_code or 'ERROR'}: {detail}")
        self.status_code = status_code
        self.detail = detail
        self.error_code = error_code
        self.data = parse_hex(data) if data else b""


class RemoteProxyClient:
    """Thin wrapper over the broker's endpoints.

    Example:
        client = RemoteProxyClient()
        logic = client.deploy_logic("counter-v1", sender=ALICE)
        proxy = client.deploy_proxy(logic, admin=ALICE, sender=ALICE)
        client.call(proxy, encode_call("increment()"), sender=ALICE)
    """

    def __init__(self, base_url: str = DEFAULT_BROKER_URL, client: httpx.Client | None = None):
        self._client = client or httpx.Client(base_url=base_url, timeout=DEFAULT_TIMEOUT)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> RemoteProxyClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._client.request(method, path, **kwargs)
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {"detail": response.text}
            detail = body.get("detail", "")
            if not isinstance(detail, str):
                detail = str(detail)
            raise RemoteCallError(
                response.status_code,
                detail,
                error_code=body.get("error_code"),
                data=body.get("data"),
            )
        return response.json()

    def deploy_logic(self, kind: str, *, sender: str) -> str:
        body = self._request("POST", "/deploy/logic", json={"kind": kind, "sender": sender})
        return DeployResponse(**body).address

    def deploy_proxy(
        self,
        logic: str,
        admin: str,
        setup_payload: bytes = b"",
        *,
        sender: str,
        value: int = 0,
    ) -> str:
        body = self._request("POST", "/deploy/proxy", json={
            "logic": logic,
            "admin": admin,
            "sender": sender,
            "setup_payload": to_hex(setup_payload),
            "value": value,
        })
        return DeployResponse(**body).address

    def state(self, proxy: str) -> ProxyState:
        return ProxyState(**self._request("GET", f"/proxies/{proxy}"))

    def call(self, proxy: str, payload: bytes, *, sender: str, value: int = 0) -> bytes:
        """Send a payload through the proxy and return the raw return data."""
        body = self._request("POST", f"/proxies/{proxy}/call", json={
            "sender": sender,
            "payload": to_hex(payload),
            "value": value,
        })
        return parse_hex(CallResponse(**body).return_data)

    def static_call(self, proxy: str, payload: bytes, *, sender: str) -> bytes:
        body = self._request("POST", f"/proxies/{proxy}/static_call", json={
            "sender": sender,
            "payload": to_hex(payload),
        })
        return parse_hex(CallResponse(**body).return_data)

    def upgrade_to(self, proxy: str, new_logic: str, *, sender: str) -> list[LogEntry]:
        body = self._request("POST", f"/proxies/{proxy}/upgrade", json={
            "sender": sender,
            "new_logic": new_logic,
        })
        return CallResponse(**body).events

    def upgrade_to_and_call(
        self,
        proxy: str,
        new_logic: str,
        payload: bytes,
        *,
        sender: str,
        value: int = 0,
    ) -> list[LogEntry]:
        body = self._request("POST", f"/proxies/{proxy}/upgrade_and_call", json={
            "sender": sender,
            "new_logic": new_logic,
            "payload": to_hex(payload),
            "value": value,
        })
        return CallResponse(**body).events

    def change_admin(self, proxy: str, new_admin: str, *, sender: str) -> list[LogEntry]:
        body = self._request("POST", f"/proxies/{proxy}/change_admin", json={
            "sender": sender,
            "new_admin": new_admin,
        })
        return CallResponse(**body).events

    def events(self, emitter: str | None = None, name: str | None = None) -> list[LogEntry]:
        params = {k: v for k, v in {"emitter": emitter, "name": name}.items() if v is not None}
        return [LogEntry(**entry) for entry in self._request("GET", "/events", params=params)]
