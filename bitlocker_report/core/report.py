"""Collect inventory and escrow data and build the report."""

import asyncio
import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from bitlocker_report.core.escrow import (
    DEFAULT_WINDOWS_11_MIN_BUILD,
    build_index,
    join_and_classify,
    summarize,
)
from bitlocker_report.schemas.device import (
    EnrichedDevice,
    ManagedDevice,
    RecoveryKey,
    SummaryRow,
)
from bitlocker_report.services.graph_client import GraphClient

logger = logging.getLogger(__name__)


class EscrowReport(BaseModel):
    """Enriched devices and their summary for one report run."""

    devices: list[EnrichedDevice] = Field(default_factory=list)
    summary: list[SummaryRow] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=datetime.now)
    windows_11_min_build: str = DEFAULT_WINDOWS_11_MIN_BUILD

    @property
    def total_devices(self) -> int:
        """Get count of Windows devices in the report."""
        return len(self.devices)

    @property
    def devices_with_keys(self) -> int:
        """Get count of devices with at least one escrowed key."""
        return sum(1 for d in self.devices if d.has_recovery_key_in_escrow)

    @property
    def devices_without_keys(self) -> int:
        """Get count of devices with nothing escrowed."""
        return self.total_devices - self.devices_with_keys

    @property
    def escrow_coverage_pct(self) -> float:
        """Percentage of devices with an escrowed key."""
        if not self.total_devices:
            return 0.0
        return self.devices_with_keys / self.total_devices * 100

    def get_summary(self) -> dict[str, Any]:
        """Get report summary as a dictionary."""
        return {
            "generated_at": self.generated_at.isoformat(),
            "windows_11_min_build": self.windows_11_min_build,
            "total_devices": self.total_devices,
            "devices_with_keys": self.devices_with_keys,
            "devices_without_keys": self.devices_without_keys,
            "escrow_coverage_pct": round(self.escrow_coverage_pct, 1),
            "groups": [
                {
                    "windows_version": row.windows_version.value,
                    "encryption_status": row.encryption_status.value,
                    "count": row.count,
                }
                for row in self.summary
            ],
        }


async def collect_report(
    client: GraphClient,
    windows_11_min_build: str = DEFAULT_WINDOWS_11_MIN_BUILD,
) -> EscrowReport:
    """Fetch devices and recovery keys, then join and summarize them.

    Both fetches must complete before any processing happens; a failure
    in either propagates as GraphAPIError.

    Args:
        client: Authenticated Graph client
        windows_11_min_build: First version reported by Windows 11

    Returns:
        The assembled report
    """
    logger.info("Fetching managed devices and BitLocker recovery keys")
    raw_devices, raw_keys = await asyncio.gather(
        client.get_windows_managed_devices(),
        client.get_bitlocker_recovery_keys(),
    )

    devices = [ManagedDevice.model_validate(item) for item in raw_devices]
    keys = [RecoveryKey.model_validate(item) for item in raw_keys]

    index = build_index(keys)
    enriched = join_and_classify(
        devices, index, windows_11_min_build=windows_11_min_build
    )
    summary = summarize(enriched)

    report = EscrowReport(
        devices=enriched,
        summary=summary,
        windows_11_min_build=windows_11_min_build,
    )
    logger.info(
        f"Report built: {report.total_devices} Windows devices, "
        f"{report.devices_with_keys} with escrowed keys, "
        f"{len(index)} devices in escrow index"
    )
    return report
