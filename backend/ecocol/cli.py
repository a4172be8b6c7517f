"""ECO-COL Viewer CLI - Command Line Interface for batch export.

Usage:
    python -m ecocol.cli <command> [options]

Commands:
    export          Render a DICOM file with its annotations and export it
    version         Show version information

Examples:
    python -m ecocol.cli export study.dcm --format png --frame 3
    python -m ecocol.cli export cine.dcm --format video --fps 15 --study-id US-0042
    python -m ecocol.cli export cine.dcm --format pdf --study-id US-0042 \\
        --measurements measurements.json --patient-name "DOE^JANE"

"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import NoReturn

from pydicom.errors import InvalidDicomError

from ecocol.canvas.context import ViewerContext
from ecocol.canvas.host import DirectoryDownloadSink, Severity
from ecocol.core.config import settings
from ecocol.core.logging import setup_logging
from ecocol.services.dicom.frames import load_frame_sequence
from ecocol.services.export import StudyMetadata

EXPORT_FORMATS = ("png", "jpeg", "zip", "video", "pdf")


def print_banner() -> None:
    """Print ECO-COL CLI banner."""
    print("\n" + "=" * 50)
    print(" ECO-COL Viewer CLI")
    print(" Tele-Radiology Annotation & Measurement Toolkit")
    print("=" * 50 + "\n")


def print_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"ERROR: {message}", file=sys.stderr)


def print_success(message: str) -> None:
    """Print success message."""
    print(f"SUCCESS: {message}")


def print_info(message: str) -> None:
    """Print info message."""
    print(f"INFO: {message}")


class ConsoleNotifier:
    """Prints viewer notifications and remembers whether any failed."""

    def __init__(self):
        self.failed = False

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        severity = Severity(severity)
        if severity in (Severity.WARNING, Severity.ERROR):
            self.failed = True
            print_error(message)
        elif severity is Severity.SUCCESS:
            print_success(message)
        else:
            print_info(message)


async def run_export(args: argparse.Namespace) -> bool:
    """Load the DICOM file into a headless viewer and run one export."""
    notifier = ConsoleNotifier()
    viewer = ViewerContext(
        notifier=notifier,
        sink=DirectoryDownloadSink(args.output_dir),
    )

    try:
        sequence = load_frame_sequence(Path(args.dicom))
    except (OSError, ValueError, InvalidDicomError) as e:
        print_error(f"Cannot read DICOM file: {e}")
        return False

    study_id = args.study_id or sequence.metadata.get("study_instance_uid")
    viewer.open_study(
        StudyMetadata(
            study_id=study_id,
            patient_name=args.patient_name or sequence.metadata.get("patient_name"),
            modality=sequence.metadata.get("modality") or "US",
            hospital=args.hospital,
            observations=args.observations,
        )
    )
    viewer.load_frames(sequence)
    if args.pixel_spacing is not None:
        viewer.set_pixel_spacing(args.pixel_spacing)

    if args.annotations:
        await viewer.load_annotations(Path(args.annotations).read_text(encoding="utf-8"))
    if args.measurements:
        await viewer.load_measurements(Path(args.measurements).read_text(encoding="utf-8"))
    if notifier.failed:
        return False

    if args.frame is not None:
        viewer.show_frame(args.frame - 1)

    if args.format in ("png", "jpeg"):
        handle = viewer.export_current_frame(args.format, args.quality)
    elif args.format == "zip":
        handle = viewer.export_all_frames()
    elif args.format == "video":
        handle = viewer.export_video(args.fps)
    else:
        handle = viewer.export_report()

    artifact = await handle
    return artifact is not None and not notifier.failed


def cmd_version(_args: argparse.Namespace) -> int:
    """Show version information."""
    print_banner()
    print(f"Version:     {settings.app_version}")
    print(f"Environment: {settings.environment}")
    print(f"Debug:       {settings.debug}")
    print(f"Python:      {sys.version.split()[0]}")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Export command."""
    print_banner()
    setup_logging(log_level="DEBUG" if args.verbose else "WARNING")
    result = asyncio.run(run_export(args))
    return 0 if result else 1


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="ecocol-cli",
        description="ECO-COL Viewer CLI - Batch export of annotated DICOM images",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=f"ECO-COL Viewer {settings.app_version}",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
    )

    # version command
    version_parser = subparsers.add_parser(
        "version",
        help="Show version information",
    )
    version_parser.set_defaults(func=cmd_version)

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Render a DICOM file with its annotations and export it",
    )
    export_parser.add_argument("dicom", help="DICOM file to load")
    export_parser.add_argument(
        "--format",
        "-f",
        choices=EXPORT_FORMATS,
        default="png",
        help="Export format (default: png)",
    )
    export_parser.add_argument(
        "--output-dir",
        "-o",
        type=Path,
        default=settings.export.output_dir,
        help="Directory the export is written to",
    )
    export_parser.add_argument("--annotations", "-a", help="Annotation blob (JSON) to draw")
    export_parser.add_argument("--measurements", "-m", help="Measurement blob (JSON) to draw")
    export_parser.add_argument("--frame", type=int, help="Frame to export (1-based)")
    export_parser.add_argument("--fps", type=int, help="Video frame rate")
    export_parser.add_argument("--quality", type=float, help="JPEG quality (0-1)")
    export_parser.add_argument(
        "--pixel-spacing",
        type=float,
        help="Override the pixel spacing (mm/px) read from the file",
    )
    export_parser.add_argument("--study-id", help="Study id used for file names and reports")
    export_parser.add_argument("--patient-name", help="Patient name printed on the report")
    export_parser.add_argument("--hospital", help="Hospital printed on the report")
    export_parser.add_argument("--observations", help="Observations printed on the report")
    export_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    export_parser.set_defaults(func=cmd_export)

    return parser


def main() -> NoReturn:
    """Main CLI entry point."""
    parser = build_parser()

    # Parse arguments
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    # Execute command
    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
