"""Bootstrap for the machine workbook.

The module doubles as a script (``atm-setup``) and as a library used by the
tests. A fresh machine starts the way a newly delivered teller does: a
small float in the cassettes, and low ink and paper.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence
import sys

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook

from . import data_manager
from .cash_reserve import CashReserveState, DEFAULT_MACHINE_ID, DEFAULT_SOFTWARE_VERSION

# 1x100, 2x50, 5x20, 5x10: 350 in total.
DEFAULT_CASSETTES: Mapping[int, int] = {100: 1, 50: 2, 20: 5, 10: 5}
DEFAULT_INK_LEVEL = 5
DEFAULT_PAPER_LEVEL = 6

CONFIG_FILE = data_manager.CONFIG_FILE_NAME


@dataclass(frozen=True)
class SetupSettings:
    """Configuration values used during setup."""

    data_file: Path
    machine_id: str
    software_version: str


def load_settings(config_path: Path) -> SetupSettings:
    """Read ``config.ini`` and produce :class:`SetupSettings`.

    Relative ``DataFile`` entries are resolved against the config file's
    directory.
    """

    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.expanduser().resolve().parent)
    return SetupSettings(
        data_file=settings.data_file,
        machine_id=settings.machine_id,
        software_version=settings.default_software_version,
    )


def build_machine_workbook(
    *,
    machine_id: str = DEFAULT_MACHINE_ID,
    software_version: str = DEFAULT_SOFTWARE_VERSION,
    cassettes: Mapping[int, int] = DEFAULT_CASSETTES,
    ink_level: int = DEFAULT_INK_LEVEL,
    paper_level: int = DEFAULT_PAPER_LEVEL,
    sheet_columns: Mapping[str, Sequence[str]] = data_manager.SHEET_COLUMNS,
) -> Workbook:
    """Return an in-memory workbook with header rows and the seeded machine state."""

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)
    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    data_manager.write_machine_state(
        workbook,
        CashReserveState(
            notes=dict(cassettes),
            ink_level=ink_level,
            paper_level=paper_level,
            machine_id=machine_id,
            software_version=software_version,
        ),
    )
    return workbook


def create_machine_workbook(
    destination: Path,
    *,
    machine_id: str = DEFAULT_MACHINE_ID,
    software_version: str = DEFAULT_SOFTWARE_VERSION,
    cassettes: Mapping[int, int] = DEFAULT_CASSETTES,
    overwrite: bool = False,
) -> Path:
    """Create the machine workbook at ``destination``.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is
            ``False``.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing machine workbook: {destination}")

    workbook = build_machine_workbook(
        machine_id=machine_id,
        software_version=software_version,
        cassettes=cassettes,
    )
    data_manager.save_workbook(workbook, destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    settings = load_settings(config_path)
    return create_machine_workbook(
        settings.data_file,
        machine_id=settings.machine_id,
        software_version=settings.software_version,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="atm-setup", description="Initialize the ATM machine workbook")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- ATM Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created machine workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
