"""External service clients."""

from bitlocker_report.services.graph_client import GraphClient

__all__ = ["GraphClient"]
