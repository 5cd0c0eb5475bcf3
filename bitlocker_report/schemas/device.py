"""Managed device and recovery key schemas.

Input records are validated straight from Microsoft Graph JSON using the
Graph camelCase property names as aliases. Output records keep the
classification enums; they are rendered to display strings only when
the workbook is written.
"""

import re
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from bitlocker_report.schemas.enums import EncryptionStatus, WindowsVersion

_FRACTIONAL_SECONDS = re.compile(r"\.(\d+)")


def _parse_graph_datetime(value: Any) -> datetime | None:
    """Parse a Graph timestamp into a naive UTC datetime.

    Graph reports "never" as 0001-01-01T00:00:00Z; that sentinel and
    anything unparseable become None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).replace("Z", "+00:00")
        # Graph may send 7 fractional digits
        text = _FRACTIONAL_SECONDS.sub(
            lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1
        )
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    if parsed.year <= 1:
        return None
    return parsed


class ManagedDevice(BaseModel):
    """Intune managed device inventory record."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str = Field(..., description="Intune managed device ID")
    device_name: str | None = Field(None, alias="deviceName")
    azure_ad_device_id: str | None = Field(
        None,
        alias="azureADDeviceId",
        description="Entra ID device ID, the key recovery keys are escrowed under",
    )
    serial_number: str | None = Field(None, alias="serialNumber")
    model: str | None = Field(None, alias="model")
    manufacturer: str | None = Field(None, alias="manufacturer")
    operating_system: str | None = Field(None, alias="operatingSystem")
    os_version: str | None = Field(None, alias="osVersion")
    is_encrypted: bool | None = Field(
        None, alias="isEncrypted", description="None when Intune has no value"
    )
    compliance_state: str | None = Field(None, alias="complianceState")
    user_principal_name: str | None = Field(None, alias="userPrincipalName")
    last_sync_date_time: datetime | None = Field(None, alias="lastSyncDateTime")
    enrolled_date_time: datetime | None = Field(None, alias="enrolledDateTime")

    @field_validator("last_sync_date_time", "enrolled_date_time", mode="before")
    @classmethod
    def parse_timestamps(cls, v: Any) -> datetime | None:
        """Normalize Graph timestamps."""
        return _parse_graph_datetime(v)


class RecoveryKey(BaseModel):
    """BitLocker recovery key metadata escrowed in Entra ID.

    The key material itself is never requested.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str = Field(..., description="Recovery key ID")
    device_id: str | None = Field(None, alias="deviceId")
    volume_type: str | None = Field(None, alias="volumeType")
    created_date_time: datetime | None = Field(None, alias="createdDateTime")

    @field_validator("created_date_time", mode="before")
    @classmethod
    def parse_created(cls, v: Any) -> datetime | None:
        return _parse_graph_datetime(v)


class EnrichedDevice(ManagedDevice):
    """Managed device joined with its escrowed recovery keys."""

    windows_version: WindowsVersion
    encryption_status: EncryptionStatus
    recovery_volume_types: list[str] = Field(
        default_factory=list,
        description="Distinct volume types in the order first seen",
    )
    recovery_key_ids: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def recovery_key_count(self) -> int:
        """Number of recovery keys escrowed for this device."""
        return len(self.recovery_key_ids)

    @computed_field
    @property
    def has_recovery_key_in_escrow(self) -> bool:
        """Whether at least one recovery key is escrowed."""
        return self.recovery_key_count > 0


class SummaryRow(BaseModel):
    """Device count for one (Windows version, encryption status) pair."""

    model_config = ConfigDict(frozen=True)

    windows_version: WindowsVersion
    encryption_status: EncryptionStatus
    count: int = Field(..., ge=0)
