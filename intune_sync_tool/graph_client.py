"""
Microsoft Graph client for Intune managed devices using bearer auth over HTTPS.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import requests

from .config import DEFAULT_GRAPH_BASE_URL
from .models import Device, Platform
from .utils import parse_graph_datetime

LOGIN_URL = "https://login.microsoftonline.com"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
DEVICE_FIELDS = "id,deviceName,operatingSystem,lastSyncDateTime,userPrincipalName"


class TransportError(Exception):
    """Raised when the network/API layer fails or the session is not authenticated."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(TransportError):
    """Raised when credentials are missing or Graph rejects them (401/403)."""


class GraphApiError(Exception):
    """Raised when Graph returns data that cannot be parsed."""


@dataclass
class GraphAuth:
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    bearer_token: Optional[str] = None

    def from_env(self) -> "GraphAuth":
        self.tenant_id = self.tenant_id or os.environ.get("INTUNE_TENANT_ID")
        self.client_id = self.client_id or os.environ.get("INTUNE_CLIENT_ID")
        self.client_secret = self.client_secret or os.environ.get("INTUNE_CLIENT_SECRET")
        self.bearer_token = self.bearer_token or os.environ.get("INTUNE_BEARER_TOKEN")
        return self


def _status_hint(status_code: int) -> str:
    if status_code == 401:
        return "Authentication failed: token may be expired or invalid."
    if status_code == 403:
        return (
            "Forbidden: the app registration lacks required permissions "
            "(DeviceManagementManagedDevices.Read.All and "
            "DeviceManagementManagedDevices.PrivilegedOperations.All)."
        )
    if status_code == 404:
        return "Resource not found: the device may have been removed."
    if status_code == 429:
        return "Throttled by Graph: consider increasing the sync delay."
    if status_code >= 500:
        return "Server error: Graph returned an internal error. Please try again later."
    return ""


class GraphClient:
    """
    Client for the Intune managed-device endpoints of one Graph API version.

    Holds one authenticated ``requests.Session`` for its lifetime. Use it as a
    context manager so the session is closed on every exit path.
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        *,
        base_url: str = DEFAULT_GRAPH_BASE_URL,
        auth: Optional[GraphAuth] = None,
        tenant_id: Optional[str] = None,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.base_url = base_url.rstrip("/")
        self.auth = (auth or GraphAuth(tenant_id=tenant_id)).from_env()
        self.timeout = timeout
        self.session = session or requests.Session()
        self._cached_token: Optional[str] = None
        self._token_expiry: Optional[float] = None

    def __enter__(self) -> "GraphClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()
        self._cached_token = None
        self._token_expiry = None

    # -------- Auth --------
    def _get_token(self) -> str:
        if self._cached_token and self._token_expiry:
            # Refresh token if within 60 seconds of expiry
            if time.time() + 60 < self._token_expiry:
                return self._cached_token
            self.logger.debug("Token expired or expiring soon, refreshing...")
            self._cached_token = None
            self._token_expiry = None

        if self._cached_token:
            return self._cached_token

        if self.auth.bearer_token:
            self._cached_token = self.auth.bearer_token
            return self._cached_token
        if self.auth.tenant_id and self.auth.client_id and self.auth.client_secret:
            self._cached_token = self._fetch_token_client_creds()
            return self._cached_token
        raise AuthenticationError(
            "No Graph credentials configured. Set INTUNE_BEARER_TOKEN, or INTUNE_TENANT_ID, "
            "INTUNE_CLIENT_ID and INTUNE_CLIENT_SECRET."
        )

    def _fetch_token_client_creds(self) -> str:
        url = f"{LOGIN_URL}/{self.auth.tenant_id}/oauth2/v2.0/token"
        payload = {
            "grant_type": "client_credentials",
            "client_id": self.auth.client_id,
            "client_secret": self.auth.client_secret,
            "scope": GRAPH_SCOPE,
        }
        try:
            resp = self.session.post(url, data=payload, timeout=15)
        except requests.RequestException as exc:
            raise TransportError(f"Failed to fetch token with client credentials: {exc}") from exc

        if resp.status_code >= 400:
            error_cls = AuthenticationError if resp.status_code < 500 else TransportError
            raise error_cls(
                f"HTTP {resp.status_code} fetching token for tenant {self.auth.tenant_id}. "
                "Verify INTUNE_TENANT_ID, INTUNE_CLIENT_ID and INTUNE_CLIENT_SECRET. "
                f"Server response: {resp.text[:500]}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
            token = data["access_token"]
        except (KeyError, ValueError) as exc:
            raise GraphApiError(f"Invalid token response format: {exc}") from exc

        if "expires_in" in data:
            self._token_expiry = time.time() + float(data["expires_in"])
        self.logger.debug("Acquired Graph token for tenant %s", self.auth.tenant_id)
        return token

    # -------- Transport --------
    def _request(self, method: str, url: str) -> requests.Response:
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._get_token()}",
        }
        self.logger.debug("api call method=%s url=%s", method, url)
        try:
            resp = self.session.request(method, url, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(f"HTTP request failed for {url}: {exc}") from exc

        if resp.status_code >= 400:
            error_msg = f"HTTP {resp.status_code} for {method} {url}"
            hint = _status_hint(resp.status_code)
            if hint:
                error_msg += f". {hint}"
            error_msg += f" Server response (first 500 chars): {resp.text[:500]}"
            if resp.status_code in (401, 403):
                raise AuthenticationError(error_msg, status_code=resp.status_code)
            raise TransportError(error_msg, status_code=resp.status_code)
        return resp

    def _get_json(self, url: str) -> Dict[str, Any]:
        resp = self._request("GET", url)
        try:
            data = resp.json()
        except ValueError as exc:
            self.logger.error("Failed to parse JSON from response. Body: %s", resp.text[:1000])
            raise GraphApiError(f"Failed to parse JSON response for {url}") from exc
        if not isinstance(data, dict):
            raise GraphApiError(f"Unexpected response type for {url}: {type(data).__name__}")
        return data

    # -------- Parsing helpers --------
    def _parse_device(self, raw: Dict[str, Any]) -> Optional[Device]:
        device_id = raw.get("id")
        if not device_id:
            return None
        return Device(
            id=str(device_id),
            name=raw.get("deviceName") or "",
            platform=raw.get("operatingSystem"),
            last_sync=parse_graph_datetime(raw.get("lastSyncDateTime")),
            owner=raw.get("userPrincipalName"),
        )

    # -------- Managed devices --------
    def list_managed_devices(self, platforms: Optional[Iterable[Platform]] = None) -> List[Device]:
        """
        List managed devices, following ``@odata.nextLink`` until all pages are read.

        Args:
            platforms: Optional platforms to filter server-side on ``operatingSystem``

        Returns:
            List of Device snapshots in server order
        """
        url = f"{self.base_url}/deviceManagement/managedDevices?$select={DEVICE_FIELDS}"
        if platforms:
            tags = [tag for platform in platforms for tag in platform.tags]
            clause = " or ".join(f"operatingSystem eq '{tag}'" for tag in tags)
            url += "&$filter=" + quote(clause)

        devices: List[Device] = []
        page = 0
        next_url: Optional[str] = url
        while next_url:
            payload = self._get_json(next_url)
            values = payload.get("value")
            if not isinstance(values, list):
                raise GraphApiError(f"Response for {next_url} is missing a 'value' list")
            for raw in values:
                if not isinstance(raw, dict):
                    self.logger.warning("Skipping non-dict device entry: %s", type(raw))
                    continue
                device = self._parse_device(raw)
                if device is not None:
                    devices.append(device)
            self.logger.debug("Fetched page %d with %d devices (total: %d)", page, len(values), len(devices))
            next_url = payload.get("@odata.nextLink")
            page += 1
        return devices

    def sync_device(self, device_id: str) -> None:
        """
        Queue a syncDevice action for one managed device.

        Graph accepts the action with 204 No Content; the device checks in asynchronously.

        Raises:
            TransportError: If the request fails or Graph rejects it
        """
        url = f"{self.base_url}/deviceManagement/managedDevices/{quote(device_id, safe='')}/syncDevice"
        self._request("POST", url)
