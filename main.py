"""CLI entry point for the SDD exporter.

Usage::

    python main.py project.yaml [-o OUTDIR] [--format docx|pdf|both] \\
        [--theme path/to/theme.yaml] [--all-sections] [-v]
"""

import argparse
import logging
import sys
from pathlib import Path

from sddexport.design import DesignSystem
from sddexport.errors import ExportError
from sddexport.exporters import PdfExportAdapter, WordExportAdapter
from sddexport.project import load_project

logger = logging.getLogger("sdd-export")


def _build_argument_parser() -> argparse.ArgumentParser:
    """Create and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="sdd-export",
        description="Export a Solution Design Document project to Word and PDF.",
    )

    parser.add_argument(
        "project",
        help="Path to the project file (YAML or JSON).",
    )
    parser.add_argument(
        "-o", "--output-dir",
        default=None,
        help="Directory for the exported files. Defaults to the project file's directory.",
    )
    parser.add_argument(
        "--format",
        choices=("docx", "pdf", "both"),
        default="both",
        help="Which target(s) to export.",
    )
    parser.add_argument(
        "--theme",
        default=None,
        help="Path to a theme YAML overlay for the design system.",
    )
    parser.add_argument(
        "--all-sections",
        action="store_true",
        default=False,
        help="Export every catalog section, ignoring selected_sections.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Enable verbose (DEBUG) logging output.",
    )

    return parser


def _setup_logging(verbose: bool) -> None:
    """Configure the root logger for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stderr),
        logging.FileHandler(log_dir / "sdd-export.log", encoding="utf-8"),
    ]

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def main(argv: list[str] | None = None) -> None:
    """Run the export pipeline for one project file."""
    parser = _build_argument_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    project_path = Path(args.project)
    output_dir = Path(args.output_dir) if args.output_dir else project_path.parent
    logger.info("Project: %s", project_path)
    logger.info("Output : %s", output_dir)

    try:
        design = DesignSystem(theme_path=args.theme)
        project = load_project(project_path, all_sections=args.all_sections)

        written: list[Path] = []
        if args.format in ("docx", "both"):
            word = WordExportAdapter(design, output_dir=output_dir)
            written.append(word.export_to_word(project.request, project.name))
        if args.format in ("pdf", "both"):
            pdf = PdfExportAdapter(design, output_dir=output_dir)
            written.append(pdf.export_to_pdf(project.request, project.name))

        for path in written:
            print(f"Exported: {path}")

    except (FileNotFoundError, ValueError) as exc:
        logger.error("Invalid input: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except ExportError as exc:
        print(f"Error: {exc}\nHint: {exc.hint}", file=sys.stderr)
        sys.exit(1)
    except Exception as exc:
        logger.exception("Unexpected error during export.")
        print(
            f"Error: An unexpected error occurred: {exc}\n"
            "Run with -v for detailed debug output.",
            file=sys.stderr,
        )
        sys.exit(2)


if __name__ == "__main__":
    main()
