"""Join Intune devices with escrowed BitLocker recovery keys.

The pipeline runs strictly forward:

    recovery keys -> build_index -> DeviceKeyIndex
    devices + index -> join_and_classify -> enriched devices
    enriched devices -> summarize -> summary rows

All three steps are pure functions over fully fetched collections.
"""

import logging
from collections import Counter
from collections.abc import Iterable, Sequence

from bitlocker_report.schemas.device import (
    EnrichedDevice,
    ManagedDevice,
    RecoveryKey,
    SummaryRow,
)
from bitlocker_report.schemas.enums import EncryptionStatus, WindowsVersion

logger = logging.getLogger(__name__)

# Graph operatingSystem value for Windows endpoints
WINDOWS_PLATFORM = "Windows"

# Windows 11 still reports 10.0; the build number is what moved.
DEFAULT_WINDOWS_11_MIN_BUILD = "10.0.22000"

DeviceKeyIndex = dict[str, list[RecoveryKey]]

_VERSION_COMPONENTS = 4


def parse_os_version(version: str | None) -> tuple[int, ...] | None:
    """Parse a dotted numeric version string.

    Accepts two to four components of non-negative integers, e.g.
    "10.0" or "10.0.22631.3007".

    Args:
        version: Version string as reported by Intune

    Returns:
        Tuple of components padded to four, or None if the string is
        missing or malformed
    """
    if not version:
        return None
    parts = version.strip().split(".")
    if not 2 <= len(parts) <= _VERSION_COMPONENTS:
        return None
    if not all(part.isascii() and part.isdigit() for part in parts):
        return None
    numbers = [int(part) for part in parts]
    numbers.extend([0] * (_VERSION_COMPONENTS - len(numbers)))
    return tuple(numbers)


def _parse_threshold(windows_11_min_build: str) -> tuple[int, ...]:
    threshold = parse_os_version(windows_11_min_build)
    if threshold is None:
        raise ValueError(f"Invalid Windows 11 minimum build: {windows_11_min_build!r}")
    return threshold


def build_index(keys: Iterable[RecoveryKey]) -> DeviceKeyIndex:
    """Group recovery keys by owning device ID.

    Keys without a device ID cannot be matched to any device and are
    left out. Input order is kept within each bucket.

    Args:
        keys: Recovery key records

    Returns:
        Mapping of device ID to the keys escrowed for it
    """
    index: DeviceKeyIndex = {}
    skipped = 0
    for key in keys:
        if key.device_id is None or not key.device_id.strip():
            skipped += 1
            continue
        index.setdefault(key.device_id, []).append(key)

    if skipped:
        logger.info(f"Skipped {skipped} recovery keys with no device ID")
    return index


def classify_windows_version(
    os_version: str | None,
    windows_11_min_build: str = DEFAULT_WINDOWS_11_MIN_BUILD,
) -> WindowsVersion:
    """Classify an OS version string as Windows 10 or Windows 11.

    Args:
        os_version: Device OS version, e.g. "10.0.22631.3007"
        windows_11_min_build: First version reported by Windows 11

    Returns:
        WINDOWS_11 at or above the threshold, WINDOWS_10 below it and
        UNKNOWN when the version cannot be parsed

    Raises:
        ValueError: If the threshold itself is not a valid version
    """
    threshold = _parse_threshold(windows_11_min_build)
    return _classify(os_version, threshold)


def _classify(os_version: str | None, threshold: tuple[int, ...]) -> WindowsVersion:
    parsed = parse_os_version(os_version)
    if parsed is None:
        logger.debug(f"Could not parse OS version {os_version!r}")
        return WindowsVersion.UNKNOWN
    if parsed >= threshold:
        return WindowsVersion.WINDOWS_11
    return WindowsVersion.WINDOWS_10


def classify_encryption(is_encrypted: bool | None) -> EncryptionStatus:
    """Map the Intune encryption flag to an encryption status."""
    if is_encrypted is None:
        return EncryptionStatus.UNKNOWN
    return EncryptionStatus.YES if is_encrypted else EncryptionStatus.NO


def join_and_classify(
    devices: Iterable[ManagedDevice],
    index: DeviceKeyIndex,
    windows_11_min_build: str = DEFAULT_WINDOWS_11_MIN_BUILD,
) -> list[EnrichedDevice]:
    """Enrich Windows devices with their classification and escrowed keys.

    Devices on other platforms are dropped. Device IDs are matched
    against the index by exact string equality.

    Args:
        devices: Managed device inventory
        index: Recovery keys grouped by device ID
        windows_11_min_build: First version reported by Windows 11

    Returns:
        One enriched record per Windows device, in input order

    Raises:
        ValueError: If windows_11_min_build is not a valid version
    """
    threshold = _parse_threshold(windows_11_min_build)

    enriched = []
    for device in devices:
        if device.operating_system != WINDOWS_PLATFORM:
            continue

        matched = index.get(device.azure_ad_device_id, []) if device.azure_ad_device_id else []

        volume_types: list[str] = []
        for key in matched:
            if key.volume_type and key.volume_type not in volume_types:
                volume_types.append(key.volume_type)

        enriched.append(
            EnrichedDevice(
                **device.model_dump(),
                windows_version=_classify(device.os_version, threshold),
                encryption_status=classify_encryption(device.is_encrypted),
                recovery_volume_types=volume_types,
                recovery_key_ids=[key.id for key in matched],
            )
        )

    return enriched


def summarize(records: Sequence[EnrichedDevice]) -> list[SummaryRow]:
    """Count devices per (Windows version, encryption status) pair.

    Args:
        records: Enriched devices

    Returns:
        Summary rows sorted by version label, then encryption label
    """
    counts = Counter(
        (record.windows_version, record.encryption_status) for record in records
    )
    rows = [
        SummaryRow(windows_version=version, encryption_status=status, count=count)
        for (version, status), count in counts.items()
    ]
    return sorted(
        rows, key=lambda row: (row.windows_version.value, row.encryption_status.value)
    )
