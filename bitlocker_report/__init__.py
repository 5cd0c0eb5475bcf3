"""BitLocker recovery key escrow report for Intune managed Windows devices."""

__version__ = "0.1.0"
