"""Device classification enums."""

from enum import Enum


class WindowsVersion(str, Enum):
    """Windows release a device is classified under."""

    WINDOWS_10 = "Windows 10"
    WINDOWS_11 = "Windows 11"
    UNKNOWN = "Unknown"


class EncryptionStatus(str, Enum):
    """Disk encryption state reported by Intune."""

    YES = "Yes"
    NO = "No"
    UNKNOWN = "Unknown"
