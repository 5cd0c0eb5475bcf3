"""Test fixtures for Intune devices and BitLocker recovery keys."""

from .graph_fixtures import (
    SAMPLE_MANAGED_DEVICES,
    SAMPLE_RECOVERY_KEYS,
    make_device,
    make_recovery_key,
)

__all__ = [
    "SAMPLE_MANAGED_DEVICES",
    "SAMPLE_RECOVERY_KEYS",
    "make_device",
    "make_recovery_key",
]
