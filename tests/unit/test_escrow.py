"""Tests for the device/recovery key join pipeline."""

import pytest

from bitlocker_report.core.escrow import (
    DEFAULT_WINDOWS_11_MIN_BUILD,
    build_index,
    classify_encryption,
    classify_windows_version,
    join_and_classify,
    parse_os_version,
    summarize,
)
from bitlocker_report.schemas.device import EnrichedDevice, ManagedDevice, RecoveryKey
from bitlocker_report.schemas.enums import EncryptionStatus, WindowsVersion
from tests.fixtures import make_device, make_recovery_key


def _device(*args, **kwargs) -> ManagedDevice:
    return ManagedDevice.model_validate(make_device(*args, **kwargs))


def _key(*args, **kwargs) -> RecoveryKey:
    return RecoveryKey.model_validate(make_recovery_key(*args, **kwargs))


def _enriched(version: WindowsVersion, status: EncryptionStatus, n: int = 0) -> EnrichedDevice:
    return EnrichedDevice(
        id=f"dev-{version.name}-{status.name}-{n}",
        operating_system="Windows",
        windows_version=version,
        encryption_status=status,
    )


class TestParseOsVersion:
    """Tests for dotted version parsing."""

    def test_four_components(self):
        assert parse_os_version("10.0.22631.3007") == (10, 0, 22631, 3007)

    def test_short_version_is_padded(self):
        assert parse_os_version("10.0") == (10, 0, 0, 0)

    def test_surrounding_whitespace_is_ignored(self):
        assert parse_os_version(" 10.0.19045 ") == (10, 0, 19045, 0)

    @pytest.mark.parametrize(
        "value",
        [None, "", "abc", "10", "10.0.1.2.3", "10.0.x", "10..0", "10.0.-1", "10.0.２２０００"],
    )
    def test_malformed_versions(self, value):
        assert parse_os_version(value) is None


class TestBuildIndex:
    """Tests for grouping recovery keys by device."""

    def test_groups_by_device_id_in_input_order(self):
        keys = [
            _key("k1", "AAD-1"),
            _key("k2", "AAD-2"),
            _key("k3", "AAD-1", "fixedDataVolume"),
        ]

        index = build_index(keys)

        assert list(index) == ["AAD-1", "AAD-2"]
        assert [k.id for k in index["AAD-1"]] == ["k1", "k3"]
        assert [k.id for k in index["AAD-2"]] == ["k2"]

    def test_blank_device_ids_are_excluded(self):
        keys = [
            _key("k1", None),
            _key("k2", ""),
            _key("k3", "   "),
            _key("k4", "AAD-1"),
        ]

        index = build_index(keys)

        assert list(index) == ["AAD-1"]
        assert None not in index
        assert all(key.strip() for key in index)

    def test_every_bucket_holds_only_its_device(self, sample_keys):
        index = build_index(sample_keys)

        for device_id, bucket in index.items():
            assert all(key.device_id == device_id for key in bucket)

    def test_empty_input(self):
        assert build_index([]) == {}


class TestClassifyWindowsVersion:
    """Tests for the Windows 10/11 boundary."""

    @pytest.mark.parametrize(
        "os_version,expected",
        [
            ("10.0.21999", WindowsVersion.WINDOWS_10),
            ("10.0.22000", WindowsVersion.WINDOWS_11),
            ("10.0.22001", WindowsVersion.WINDOWS_11),
            ("10.0.19045.3803", WindowsVersion.WINDOWS_10),
            ("10.0.22631.3007", WindowsVersion.WINDOWS_11),
            ("6.3.9600", WindowsVersion.WINDOWS_10),
            ("abc", WindowsVersion.UNKNOWN),
            ("", WindowsVersion.UNKNOWN),
            (None, WindowsVersion.UNKNOWN),
        ],
    )
    def test_default_threshold(self, os_version, expected):
        assert classify_windows_version(os_version) == expected

    def test_threshold_is_overridable(self):
        assert classify_windows_version("10.0.22631", "10.0.26100") == WindowsVersion.WINDOWS_10
        assert classify_windows_version("10.0.26100", "10.0.26100") == WindowsVersion.WINDOWS_11

    def test_invalid_threshold_raises(self):
        with pytest.raises(ValueError):
            classify_windows_version("10.0.22000", "not-a-version")

    def test_default_threshold_value(self):
        assert DEFAULT_WINDOWS_11_MIN_BUILD == "10.0.22000"


class TestClassifyEncryption:
    """Tests for the tri-state encryption flag."""

    def test_mapping(self):
        assert classify_encryption(True) == EncryptionStatus.YES
        assert classify_encryption(False) == EncryptionStatus.NO
        assert classify_encryption(None) == EncryptionStatus.UNKNOWN


class TestJoinAndClassify:
    """Tests for enriching devices with escrowed keys."""

    def test_join_matches_only_own_keys(self):
        devices = [_device("dev-1", "AAD-1")]
        index = build_index([
            _key("k1", "AAD-1", "OperatingSystemVolume"),
            _key("k2", "AAD-1", "FixedDataVolume"),
            _key("k3", "AAD-2", "OperatingSystemVolume"),
        ])

        [record] = join_and_classify(devices, index)

        assert record.recovery_key_count == 2
        assert set(record.recovery_volume_types) == {"OperatingSystemVolume", "FixedDataVolume"}
        assert record.recovery_key_ids == ["k1", "k2"]
        assert "k3" not in record.recovery_key_ids
        assert record.has_recovery_key_in_escrow is True

    def test_volume_types_are_distinct_in_first_seen_order(self):
        devices = [_device("dev-1", "AAD-1")]
        index = build_index([
            _key("k1", "AAD-1", "fixedDataVolume"),
            _key("k2", "AAD-1", "operatingSystemVolume"),
            _key("k3", "AAD-1", "fixedDataVolume"),
        ])

        [record] = join_and_classify(devices, index)

        assert record.recovery_volume_types == ["fixedDataVolume", "operatingSystemVolume"]
        assert record.recovery_key_count == 3

    def test_non_windows_devices_are_dropped(self, sample_devices, sample_keys):
        records = join_and_classify(sample_devices, build_index(sample_keys))

        assert all(r.operating_system == "Windows" for r in records)
        assert "dev-5" not in [r.id for r in records]

    def test_output_keeps_input_order(self, sample_devices, sample_keys):
        records = join_and_classify(sample_devices, build_index(sample_keys))

        assert [r.id for r in records] == ["dev-1", "dev-2", "dev-3", "dev-4"]

    def test_missing_or_unmatched_device_id_means_no_keys(self):
        devices = [
            _device("dev-1", None),
            _device("dev-2", ""),
            _device("dev-3", "AAD-NOKEYS"),
        ]
        index = build_index([_key("k1", "AAD-1")])

        records = join_and_classify(devices, index)

        for record in records:
            assert record.recovery_key_count == 0
            assert record.recovery_key_ids == []
            assert record.recovery_volume_types == []
            assert record.has_recovery_key_in_escrow is False

    def test_device_id_match_is_exact(self):
        devices = [_device("dev-1", "aad-1"), _device("dev-2", " AAD-1")]
        index = build_index([_key("k1", "AAD-1")])

        records = join_and_classify(devices, index)

        assert [r.recovery_key_count for r in records] == [0, 0]

    def test_classification_fields(self, sample_devices, sample_keys):
        records = {r.id: r for r in join_and_classify(sample_devices, build_index(sample_keys))}

        assert records["dev-1"].windows_version == WindowsVersion.WINDOWS_11
        assert records["dev-1"].encryption_status == EncryptionStatus.YES
        assert records["dev-2"].windows_version == WindowsVersion.WINDOWS_10
        assert records["dev-2"].encryption_status == EncryptionStatus.NO
        assert records["dev-3"].encryption_status == EncryptionStatus.UNKNOWN
        assert records["dev-4"].windows_version == WindowsVersion.UNKNOWN

    def test_inventory_fields_are_carried_over(self, sample_devices):
        [record, *_] = join_and_classify(sample_devices, {})

        assert record.device_name == "PC-DEV-1"
        assert record.serial_number == "SN-dev-1"
        assert record.manufacturer == "Dell Inc."
        assert record.compliance_state == "compliant"
        assert record.last_sync_date_time is not None

    def test_count_invariants_hold_for_every_record(self, sample_devices, sample_keys):
        records = join_and_classify(sample_devices, build_index(sample_keys))

        for record in records:
            assert record.recovery_key_count == len(record.recovery_key_ids)
            assert record.has_recovery_key_in_escrow == (record.recovery_key_count > 0)

    def test_custom_threshold(self):
        devices = [_device("dev-1", "AAD-1", os_version="10.0.22631.3007")]

        [record] = join_and_classify(devices, {}, windows_11_min_build="10.0.26100")

        assert record.windows_version == WindowsVersion.WINDOWS_10

    def test_invalid_threshold_raises(self):
        with pytest.raises(ValueError):
            join_and_classify([], {}, windows_11_min_build="eleven")

    def test_empty_inputs(self):
        assert join_and_classify([], {}) == []


class TestSummarize:
    """Tests for grouping enriched devices."""

    def test_rows_are_sorted_by_version_then_status(self):
        records = [
            _enriched(WindowsVersion.WINDOWS_11, EncryptionStatus.NO),
            _enriched(WindowsVersion.WINDOWS_10, EncryptionStatus.YES),
            _enriched(WindowsVersion.WINDOWS_10, EncryptionStatus.NO),
            _enriched(WindowsVersion.UNKNOWN, EncryptionStatus.UNKNOWN),
        ]

        rows = summarize(records)

        assert [(r.windows_version.value, r.encryption_status.value) for r in rows] == [
            ("Unknown", "Unknown"),
            ("Windows 10", "No"),
            ("Windows 10", "Yes"),
            ("Windows 11", "No"),
        ]

    def test_counts_per_group(self):
        records = [
            _enriched(WindowsVersion.WINDOWS_11, EncryptionStatus.YES, 1),
            _enriched(WindowsVersion.WINDOWS_11, EncryptionStatus.YES, 2),
            _enriched(WindowsVersion.WINDOWS_11, EncryptionStatus.YES, 3),
            _enriched(WindowsVersion.WINDOWS_10, EncryptionStatus.YES, 1),
        ]

        rows = summarize(records)

        counts = {(r.windows_version, r.encryption_status): r.count for r in rows}
        assert counts == {
            (WindowsVersion.WINDOWS_10, EncryptionStatus.YES): 1,
            (WindowsVersion.WINDOWS_11, EncryptionStatus.YES): 3,
        }

    def test_counts_sum_to_record_count(self, sample_devices, sample_keys):
        records = join_and_classify(sample_devices, build_index(sample_keys))

        rows = summarize(records)

        assert sum(r.count for r in rows) == len(records)
        for row in rows:
            expected = sum(
                1
                for r in records
                if (r.windows_version, r.encryption_status)
                == (row.windows_version, row.encryption_status)
            )
            assert row.count == expected

    def test_empty_input(self):
        assert summarize([]) == []
