"""Microsoft Graph API client for Intune and BitLocker escrow reads."""

import logging
from typing import Dict, List, Optional

import httpx
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import ClientSecretCredential

from bitlocker_report import __version__
from bitlocker_report.core.config import GRAPH_API_BASE, Settings
from bitlocker_report.core.exceptions import ConfigurationError, GraphAPIError

logger = logging.getLogger(__name__)

GRAPH_SCOPES = ["https://graph.microsoft.com/.default"]

# Application permissions the app registration needs
REQUIRED_GRAPH_PERMISSIONS = [
    "DeviceManagementManagedDevices.Read.All",
    "BitlockerKey.ReadBasic.All",
]

MANAGED_DEVICE_FIELDS = [
    "id",
    "deviceName",
    "azureADDeviceId",
    "serialNumber",
    "model",
    "manufacturer",
    "operatingSystem",
    "osVersion",
    "isEncrypted",
    "complianceState",
    "userPrincipalName",
    "lastSyncDateTime",
    "enrolledDateTime",
]

RECOVERY_KEY_FIELDS = ["id", "deviceId", "volumeType", "createdDateTime"]

# The recoveryKeys endpoint rejects requests without client identification
BITLOCKER_CLIENT_HEADERS = {
    "ocp-client-name": "bitlocker-escrow-report",
    "ocp-client-version": __version__,
}


class GraphClient:
    """Microsoft Graph API client wrapper."""

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        base_url: str = GRAPH_API_BASE,
        page_size: int = 999,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self._client_secret = client_secret
        self._transport = transport
        self._credential: Optional[ClientSecretCredential] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "GraphClient":
        """Create a client from report settings.

        Raises:
            ConfigurationError: If tenant, client ID or secret is missing
        """
        if not settings.is_configured:
            missing = [
                name
                for name, value in (
                    ("AZURE_TENANT_ID", settings.azure_tenant_id),
                    ("AZURE_CLIENT_ID", settings.azure_client_id),
                    ("AZURE_CLIENT_SECRET", settings.azure_client_secret),
                )
                if not value
            ]
            raise ConfigurationError(
                f"Missing Azure settings: {', '.join(missing)}",
                details={"missing": missing},
            )
        return cls(
            tenant_id=settings.azure_tenant_id,
            client_id=settings.azure_client_id,
            client_secret=settings.azure_client_secret,
            base_url=settings.graph_api_base,
            page_size=settings.graph_page_size,
            timeout=settings.graph_timeout_seconds,
        )

    def _get_credential(self) -> ClientSecretCredential:
        """Get or create credential."""
        if not self._credential:
            self._credential = ClientSecretCredential(
                tenant_id=self.tenant_id,
                client_id=self.client_id,
                client_secret=self._client_secret,
            )
        return self._credential

    def _get_token(self) -> str:
        """Get access token for Graph API."""
        credential = self._get_credential()
        try:
            token = credential.get_token(*GRAPH_SCOPES)
        except ClientAuthenticationError as e:
            raise GraphAPIError(
                f"Authentication to Microsoft Graph failed for tenant {self.tenant_id}",
                error_code="authentication_failed",
                details={"cause": type(e).__name__},
            ) from e
        return token.token

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict:
        """Make authenticated request to Graph API."""
        token = self._get_token()
        request_headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if headers:
            request_headers.update(headers)

        url = endpoint if endpoint.startswith("http") else f"{self.base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=request_headers,
                    params=params,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise _error_from_response(e.response) from e
        except httpx.HTTPError as e:
            raise GraphAPIError(
                f"Graph request to {endpoint} failed: {e}",
                error_code="transport_error",
            ) from e

    async def _get_all(
        self,
        endpoint: str,
        params: Optional[Dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> List[Dict]:
        """Follow @odata.nextLink until every page has been read."""
        items: List[Dict] = []
        pages = 0

        while endpoint:
            data = await self._request("GET", endpoint, params, headers)
            items.extend(data.get("value", []))
            pages += 1

            # Handle pagination
            next_link = data.get("@odata.nextLink")
            if next_link:
                endpoint = next_link.replace(self.base_url, "")
                params = None
            else:
                endpoint = None

        logger.debug(f"Read {len(items)} items in {pages} pages")
        return items

    async def get_windows_managed_devices(self) -> List[Dict]:
        """Get all Intune managed devices running Windows."""
        params = {
            "$filter": "operatingSystem eq 'Windows'",
            "$select": ",".join(MANAGED_DEVICE_FIELDS),
            "$top": self.page_size,
        }
        devices = await self._get_all("/deviceManagement/managedDevices", params)
        logger.info(f"Fetched {len(devices)} Windows managed devices")
        return devices

    async def get_bitlocker_recovery_keys(self) -> List[Dict]:
        """Get metadata for every BitLocker recovery key in the tenant."""
        params = {"$select": ",".join(RECOVERY_KEY_FIELDS)}
        keys = await self._get_all(
            "/informationProtection/bitlocker/recoveryKeys",
            params,
            headers=BITLOCKER_CLIENT_HEADERS,
        )
        logger.info(f"Fetched {len(keys)} BitLocker recovery keys")
        return keys


def _error_from_response(response: httpx.Response) -> GraphAPIError:
    """Build a GraphAPIError from a failed Graph response."""
    graph_code = None
    graph_message = None
    try:
        error = response.json().get("error", {})
        graph_code = error.get("code")
        graph_message = error.get("message")
    except (ValueError, AttributeError):
        pass

    path = response.request.url.path
    message = f"Graph returned {response.status_code} for {path}"
    if graph_message:
        message = f"{message}: {graph_message}"
    if response.status_code == 403:
        message = (
            f"{message} (check application permissions: "
            f"{', '.join(REQUIRED_GRAPH_PERMISSIONS)})"
        )

    return GraphAPIError(
        message,
        error_code=graph_code or "graph_request_failed",
        status_code=response.status_code,
        details={"path": path},
    )
