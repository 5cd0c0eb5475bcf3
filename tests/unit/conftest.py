"""Shared fixtures for report tests."""

import copy
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from bitlocker_report.core.config import Settings
from bitlocker_report.schemas.device import ManagedDevice, RecoveryKey
from tests.fixtures import SAMPLE_MANAGED_DEVICES, SAMPLE_RECOVERY_KEYS


@pytest.fixture
def settings():
    """Settings with credentials, isolated from the environment's .env."""
    return Settings(
        _env_file=None,
        azure_tenant_id="test-tenant-id-123",
        azure_client_id="test-client-id",
        azure_client_secret="test-secret",
    )


@pytest.fixture
def sample_device_payloads():
    """Graph managedDevice payloads, including a non-Windows device."""
    return copy.deepcopy(SAMPLE_MANAGED_DEVICES)


@pytest.fixture
def sample_key_payloads():
    """Graph bitlockerRecoveryKey payloads, including an orphaned key."""
    return copy.deepcopy(SAMPLE_RECOVERY_KEYS)


@pytest.fixture
def sample_devices(sample_device_payloads):
    """Parsed managed devices."""
    return [ManagedDevice.model_validate(d) for d in sample_device_payloads]


@pytest.fixture
def sample_keys(sample_key_payloads):
    """Parsed recovery keys."""
    return [RecoveryKey.model_validate(k) for k in sample_key_payloads]


@pytest.fixture
def mock_credential():
    """Patch ClientSecretCredential so no token request leaves the process."""
    with patch(
        "bitlocker_report.services.graph_client.ClientSecretCredential"
    ) as mock_class:
        credential = MagicMock()
        credential.get_token.return_value = MagicMock(token="fake-access-token")
        mock_class.return_value = credential
        yield credential


@pytest.fixture
def mock_graph_client(sample_device_payloads, sample_key_payloads):
    """Create a mock GraphClient returning the sample payloads."""
    client = AsyncMock()
    client.get_windows_managed_devices.return_value = sample_device_payloads
    client.get_bitlocker_recovery_keys.return_value = sample_key_payloads
    return client
