"""Client helpers for the tenant drive HTTP API."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote

import requests


@dataclass
class DriveClient:
    """Thin wrapper over the REST routes.

    ``auth_token`` authenticates the caller as a tenant; ``share_token``
    presents a share link instead. When both are set the share link wins,
    matching the server's precedence.
    """

    base_url: str
    auth_token: Optional[str] = None
    share_token: Optional[str] = None
    timeout: float = 30.0
    http_client: object = requests

    def _url(self, suffix: str) -> str:
        base = self.base_url.rstrip("/")
        return f"{base}{suffix}"

    def _headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        if self.share_token:
            headers["X-Share-Token"] = self.share_token
        return headers

    def _request(self, method: str, suffix: str, **kwargs):
        response = self.http_client.request(
            method,
            self._url(suffix),
            headers=self._headers(),
            timeout=self.timeout,
            **kwargs,
        )
        response.raise_for_status()
        return response

    def list(self, path: str = "/") -> List[Dict[str, object]]:
        return self._request("GET", "/api/files", params={"path": path}).json()["files"]

    def upload(self, path: str, files: List[Path]) -> Dict[str, object]:
        handles = [file_path.open("rb") for file_path in files]
        try:
            multipart = [
                ("file", (file_path.name, handle, "application/octet-stream"))
                for file_path, handle in zip(files, handles)
            ]
            return self._request("POST", "/api/upload", params={"path": path}, files=multipart).json()
        finally:
            for handle in handles:
                handle.close()

    def download(self, path: str) -> bytes:
        return self._request("GET", f"/api/download/{quote(path.lstrip('/'))}").content

    def delete(self, path: str) -> Dict[str, object]:
        return self._request("DELETE", f"/api/delete/{quote(path.lstrip('/'))}").json()

    def mkdir(self, path: str, name: str) -> Dict[str, object]:
        return self._request("POST", "/api/mkdir", json={"path": path, "name": name}).json()

    def space(self) -> Dict[str, object]:
        return self._request("GET", "/api/space").json()

    def create_share(self, path: str, permission: str = "read", ttl_hours: float = 0) -> Dict[str, object]:
        payload = {"path": path, "permission": permission, "ttl_hours": ttl_hours}
        return self._request("POST", "/api/shares", json=payload).json()

    def list_shares(self) -> List[Dict[str, object]]:
        return self._request("GET", "/api/shares").json()

    def revoke_share(self, share_id: str) -> Dict[str, object]:
        return self._request("DELETE", f"/api/shares/{quote(share_id)}").json()
