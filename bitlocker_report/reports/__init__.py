"""Report renderers."""

from bitlocker_report.reports.excel import ExcelReportWriter

__all__ = ["ExcelReportWriter"]
