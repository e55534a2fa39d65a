from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterator, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the factory monitor service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def list_devices(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/devices")

    def get_history(
        self,
        device_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> Dict[str, Any]:
        params = {
            key: value.isoformat()
            for key, value in (("start", start), ("end", end))
            if value is not None
        }
        return self._request("GET", f"/devices/{device_id}/history", params=params)

    def get_mode(self) -> str:
        return self._request("GET", "/mode")["mode"]

    def set_mode(self, mode: str) -> str:
        return self._request("PUT", "/mode", json={"mode": mode})["mode"]

    def get_notifications(self) -> Dict[str, Any]:
        return self._request("GET", "/notifications")

    def mark_notifications_read(self) -> int:
        return self._request("POST", "/notifications/read")["marked"]

    def analyze(self, device_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/devices/{device_id}/analysis")

    def stream_chat(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        try:
            with self._client.stream("POST", "/chat", json={"messages": messages}) as response:
                response.raise_for_status()
                yield from response.iter_text()
        except httpx.HTTPStatusError as exc:
            exc.response.read()
            self._handle_http_error(exc)

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
