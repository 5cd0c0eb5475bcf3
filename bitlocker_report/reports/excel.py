"""Excel workbook output for the escrow report.

Writes a single .xlsx with a "Devices" sheet (one row per enriched
device) and a "Summary" sheet (one row per version/encryption group).
"""

import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from bitlocker_report.core.exceptions import ReportRenderError
from bitlocker_report.schemas.device import EnrichedDevice, SummaryRow

logger = logging.getLogger(__name__)

DEVICES_SHEET = "Devices"
SUMMARY_SHEET = "Summary"

MAX_COLUMN_WIDTH = 50
HEADER_FILL = PatternFill(start_color="CCCCCC", end_color="CCCCCC", fill_type="solid")

DEVICE_COLUMNS: list[tuple[str, Callable[[EnrichedDevice], Any]]] = [
    ("Device Name", lambda d: d.device_name),
    ("Managed Device ID", lambda d: d.id),
    ("Azure AD Device ID", lambda d: d.azure_ad_device_id),
    ("Serial Number", lambda d: d.serial_number),
    ("Manufacturer", lambda d: d.manufacturer),
    ("Model", lambda d: d.model),
    ("Operating System", lambda d: d.operating_system),
    ("OS Version", lambda d: d.os_version),
    ("Windows Version", lambda d: d.windows_version.value),
    ("Encrypted", lambda d: d.encryption_status.value),
    ("Compliance State", lambda d: d.compliance_state),
    ("Has Recovery Key In Escrow", lambda d: d.has_recovery_key_in_escrow),
    ("Recovery Key Count", lambda d: d.recovery_key_count),
    ("Recovery Volume Types", lambda d: ", ".join(d.recovery_volume_types)),
    ("Recovery Key IDs", lambda d: ", ".join(d.recovery_key_ids)),
    ("User Principal Name", lambda d: d.user_principal_name),
    ("Last Sync", lambda d: d.last_sync_date_time),
    ("Enrolled", lambda d: d.enrolled_date_time),
]

SUMMARY_HEADERS = ["Windows Version", "Encryption Status", "Device Count"]


def device_row(device: EnrichedDevice) -> list[Any]:
    """Flatten an enriched device to scalar cell values."""
    return [getter(device) for _, getter in DEVICE_COLUMNS]


def summary_row(row: SummaryRow) -> list[Any]:
    """Flatten a summary row to scalar cell values."""
    return [row.windows_version.value, row.encryption_status.value, row.count]


def _text(value: str) -> str:
    # Control characters are not allowed in worksheet XML
    return ILLEGAL_CHARACTERS_RE.sub("", value)


class ExcelReportWriter:
    """Write the Devices and Summary tables to one workbook."""

    def __init__(self, path: str | Path):
        """Initialize the writer.

        Args:
            path: Destination .xlsx file
        """
        self.path = Path(path)

    def write(
        self,
        devices: Sequence[EnrichedDevice],
        summary: Sequence[SummaryRow],
    ) -> Path:
        """Write both sheets and save the workbook.

        Args:
            devices: Enriched devices for the Devices sheet
            summary: Summary rows for the Summary sheet

        Returns:
            Path the workbook was written to

        Raises:
            ReportRenderError: If the destination cannot be written
        """
        wb = openpyxl.Workbook()
        # Remove default sheet
        wb.remove(wb.active)

        devices_ws = wb.create_sheet(DEVICES_SHEET)
        self._write_table(
            devices_ws,
            [header for header, _ in DEVICE_COLUMNS],
            [device_row(device) for device in devices],
        )

        summary_ws = wb.create_sheet(SUMMARY_SHEET)
        self._write_table(
            summary_ws,
            SUMMARY_HEADERS,
            [summary_row(row) for row in summary],
        )

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(self.path)
        except OSError as e:
            logger.error(f"Failed to write report to {self.path}: {e}")
            raise ReportRenderError(
                f"Could not write report to {self.path}: {e.strerror or e}",
                details={"path": str(self.path)},
            ) from e

        logger.info(
            f"Wrote {len(devices)} devices and {len(summary)} summary rows to {self.path}"
        )
        return self.path

    @staticmethod
    def _write_table(ws: Worksheet, headers: list[str], rows: list[list[Any]]) -> None:
        for col_idx, header in enumerate(headers, 1):
            cell = ws.cell(row=1, column=col_idx, value=header)
            cell.font = Font(bold=True)
            cell.fill = HEADER_FILL

        for row_idx, row_data in enumerate(rows, 2):
            for col_idx, value in enumerate(row_data, 1):
                if isinstance(value, str):
                    cell = ws.cell(row=row_idx, column=col_idx, value=_text(value))
                    # Inventory strings are literal text, never formulas
                    cell.data_type = "s"
                else:
                    ws.cell(row=row_idx, column=col_idx, value=value)

        ws.freeze_panes = "A2"

        # Auto-adjust column widths
        for col_idx, header in enumerate(headers, 1):
            values = [row[col_idx - 1] for row in rows]
            max_length = max(
                [len(header)] + [len(str(v)) for v in values if v is not None]
            )
            ws.column_dimensions[get_column_letter(col_idx)].width = min(
                max_length + 2, MAX_COLUMN_WIDTH
            )
