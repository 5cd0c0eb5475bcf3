"""Command-line entry point for the BitLocker escrow report.

Fetches Windows devices from Intune and BitLocker recovery keys from
Entra ID, joins them, and writes a two-sheet Excel workbook.

Usage:
    bitlocker-report [options]

Options:
    --output PATH                   Destination .xlsx file
    --windows-11-min-build VERSION  First version counted as Windows 11
    --json                          Print the summary as JSON
    --quiet                         Suppress the console summary
    --verbose                       Enable debug logging

Exit Codes:
    0   Report written
    1   Graph fetch, report write or internal failure
    2   Invalid configuration, or interrupted

Credentials are read from AZURE_TENANT_ID, AZURE_CLIENT_ID and
AZURE_CLIENT_SECRET (environment or .env).
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from bitlocker_report.core.config import Settings, get_settings
from bitlocker_report.core.escrow import parse_os_version
from bitlocker_report.core.exceptions import (
    ConfigurationError,
    GraphAPIError,
    ReportRenderError,
    sanitize_error,
)
from bitlocker_report.core.report import EscrowReport, collect_report
from bitlocker_report.reports.excel import ExcelReportWriter
from bitlocker_report.services.graph_client import GraphClient

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_FILENAME = "BitLocker_Escrow_Report_{timestamp}.xlsx"

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="bitlocker-report",
        description="Report BitLocker recovery key escrow for Intune Windows devices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--output",
        "-o",
        help="Destination .xlsx file (default: REPORT_OUTPUT_PATH or a timestamped file)",
    )

    parser.add_argument(
        "--windows-11-min-build",
        help="First OS version counted as Windows 11 (default: WINDOWS_11_MIN_BUILD)",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary in JSON format",
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress the console summary",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


def configure_logging(level: str, verbose: bool = False) -> None:
    """Configure root logging for a CLI run."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def resolve_output_path(explicit: str | None, settings: Settings) -> Path:
    """Pick the workbook destination.

    The --output argument wins over REPORT_OUTPUT_PATH; without either,
    a timestamped file in the working directory is used.
    """
    if explicit:
        return Path(explicit)
    if settings.report_output_path:
        return Path(settings.report_output_path)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return Path(DEFAULT_FILENAME.format(timestamp=timestamp))


def resolve_min_build(override: str | None, settings: Settings) -> str:
    """Pick the Windows 11 threshold, validating any override.

    Raises:
        ConfigurationError: If the override is not a dotted numeric version
    """
    if override is None:
        return settings.windows_11_min_build
    if parse_os_version(override) is None:
        raise ConfigurationError(
            f"--windows-11-min-build must be a dotted numeric version, got {override!r}"
        )
    return override.strip()


def print_results(report: EscrowReport, output_path: Path, args: argparse.Namespace) -> None:
    """Print the report summary to stdout."""
    summary = report.get_summary()

    if args.json:
        print(json.dumps({**summary, "output_path": str(output_path)}, indent=2))
        return

    if args.quiet:
        return

    print("\n" + "=" * 60)
    print("BITLOCKER ESCROW REPORT")
    print("=" * 60)
    print(f"Generated: {summary['generated_at']}")
    print(f"Windows 11 threshold: {summary['windows_11_min_build']}")
    print(f"Output: {output_path}")
    print()
    print(f"{'Windows Version':<18}{'Encrypted':<12}{'Devices':>8}")
    print("-" * 38)
    for group in summary["groups"]:
        print(
            f"{group['windows_version']:<18}"
            f"{group['encryption_status']:<12}"
            f"{group['count']:>8}"
        )
    print("-" * 38)
    print(f"{'Total':<30}{summary['total_devices']:>8}")
    print()
    print(f"Devices with escrowed key: {summary['devices_with_keys']}")
    print(f"Devices without escrowed key: {summary['devices_without_keys']}")
    print(f"Escrow coverage: {summary['escrow_coverage_pct']:.1f}%")


async def run_report(args: argparse.Namespace, settings: Settings) -> tuple[EscrowReport, Path]:
    """Build the report and write the workbook."""
    min_build = resolve_min_build(args.windows_11_min_build, settings)
    output_path = resolve_output_path(args.output, settings)

    client = GraphClient.from_settings(settings)
    report = await collect_report(client, windows_11_min_build=min_build)

    written = ExcelReportWriter(output_path).write(report.devices, report.summary)
    return report, written


async def async_main(argv: list[str] | None = None) -> int:
    """Async main entry point."""
    args = parse_arguments(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        configure_logging("INFO", args.verbose)
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    configure_logging(settings.log_level, args.verbose)

    try:
        report, output_path = await run_report(args, settings)

    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    except GraphAPIError as e:
        logger.error(f"Fetch failed ({e.error_code}): {e.message}")
        print(f"Failed to fetch data from Microsoft Graph: {e.message}", file=sys.stderr)
        return EXIT_FAILURE

    except ReportRenderError as e:
        print(f"Failed to write report: {e.message}", file=sys.stderr)
        return EXIT_FAILURE

    except KeyboardInterrupt:
        print("\nReport interrupted by user", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    except Exception as e:
        logger.error(f"Unexpected error building report: {sanitize_error(e)}", exc_info=args.verbose)
        print(f"Error building report: {sanitize_error(e)}", file=sys.stderr)
        return EXIT_FAILURE

    print_results(report, output_path, args)
    return EXIT_SUCCESS


def main() -> int:
    """Main entry point."""
    return asyncio.run(async_main())


if __name__ == "__main__":
    sys.exit(main())
