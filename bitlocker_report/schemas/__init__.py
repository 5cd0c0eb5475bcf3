"""Typed records for managed devices, recovery keys and report rows."""

from bitlocker_report.schemas.device import (
    EnrichedDevice,
    ManagedDevice,
    RecoveryKey,
    SummaryRow,
)
from bitlocker_report.schemas.enums import EncryptionStatus, WindowsVersion

__all__ = [
    "EncryptionStatus",
    "EnrichedDevice",
    "ManagedDevice",
    "RecoveryKey",
    "SummaryRow",
    "WindowsVersion",
]
