"""Data access layer for the ATM ledger.

This module provides low-level helpers that read from and write to the
machine workbook. Business rules belong in the ledger, engine, and
maintenance modules.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading structured records, appending or updating
   individual rows, and rewriting the machine state sheets.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .cash_reserve import CashReserveState, DEFAULT_SOFTWARE_VERSION, clamp_ink, clamp_paper
from .constants import CENTS, ZERO, AccountKind, Role, SheetName, TransactionKind


CONFIG_FILE_NAME = "config.ini"
USERS_SHEET = SheetName.USERS.value
ACCOUNTS_SHEET = SheetName.ACCOUNTS.value
TRANSACTIONS_SHEET = SheetName.TRANSACTIONS.value
MACHINE_SHEET = SheetName.MACHINE.value
CASSETTES_SHEET = SheetName.CASSETTES.value

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    USERS_SHEET: ["UserID", "Name", "PinHash", "Role"],
    ACCOUNTS_SHEET: ["AccountID", "OwnerID", "AccountKind", "Balance"],
    TRANSACTIONS_SHEET: [
        "TransactionID",
        "Timestamp",
        "TransactionKind",
        "Amount",
        "SourceAccountID",
        "DestinationAccountID",
    ],
    MACHINE_SHEET: ["MachineID", "SoftwareVersion", "InkLevel", "PaperLevel"],
    CASSETTES_SHEET: ["Denomination", "NoteCount"],
}


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    machine_id: str
    schema_version: str
    default_software_version: str = DEFAULT_SOFTWARE_VERSION


@dataclass(frozen=True)
class UserRow:
    """In-memory view of a row from the ``Users`` sheet."""

    user_id: str
    name: str
    pin_hash: str
    role: Role


@dataclass(frozen=True)
class AccountRow:
    """In-memory view of a row from the ``Accounts`` sheet."""

    account_id: str
    owner_id: str
    account_kind: AccountKind
    balance: Decimal


@dataclass(frozen=True)
class TransactionRow:
    """In-memory view of a row from the ``Transactions`` sheet."""

    transaction_id: str
    timestamp: datetime
    kind: TransactionKind
    amount: Decimal
    source_account_id: Optional[str]
    destination_account_id: Optional[str]

    def involves(self, account_id: str) -> bool:
        return account_id in (self.source_account_id, self.destination_account_id)


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no ``CONFIG_FILE_NAME`` exists in the working
            directory or any of its parents.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` must provide ``DataFile``, ``MachineID`` and
    ``SchemaVersion``. ``[Defaults] SoftwareVersion`` is optional and only
    used when a workbook is bootstrapped. Relative ``DataFile`` entries are
    anchored to ``base_path`` (or the working directory) and resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory relative data file paths are
            resolved against.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required section or option is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        machine_id = parser.get("System", "MachineID")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    software_version = parser.get("Defaults", "SoftwareVersion", fallback=DEFAULT_SOFTWARE_VERSION)

    data_file_path = Path(data_file_raw).expanduser()
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        machine_id=machine_id,
        schema_version=schema_version,
        default_software_version=software_version,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the machine workbook and verify every expected sheet exists.

    Args:
        data_file (Path): Filesystem path to the workbook.

    Returns:
        Workbook: ``openpyxl`` workbook backed by the file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist.
        KeyError: If the workbook lacks one of :data:`SHEET_COLUMNS`.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    validate_workbook(wb)
    return wb


def validate_workbook(workbook: Workbook) -> None:
    """Ensure every sheet the ledger relies on is present."""

    missing = [name for name in SHEET_COLUMNS if name not in workbook.sheetnames]
    if missing:
        log.error("Workbook is missing sheets: %s", ", ".join(missing))
        raise KeyError(f"Workbook is missing sheets: {', '.join(missing)}")


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook at ``destination``, creating parent folders."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding unsaved in-memory changes."""

    return open_workbook(data_file)


def _iter_data_rows(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[Any]]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_users(workbook: Workbook) -> Iterable[UserRow]:
    """Yield every populated row of the ``Users`` sheet as :class:`UserRow`."""

    for raw in _iter_data_rows(workbook, USERS_SHEET):
        yield deserialize_user(raw)


def iter_accounts(workbook: Workbook) -> Iterable[AccountRow]:
    """Yield every populated row of the ``Accounts`` sheet as :class:`AccountRow`."""

    for raw in _iter_data_rows(workbook, ACCOUNTS_SHEET):
        yield deserialize_account(raw)


def iter_transactions(workbook: Workbook) -> Iterable[TransactionRow]:
    """Stream the ``Transactions`` sheet in append order.

    Numeric cells become :class:`~decimal.Decimal` and blank account
    references stay ``None``.
    """

    for raw in _iter_data_rows(workbook, TRANSACTIONS_SHEET):
        yield deserialize_transaction(raw)


def append_user(workbook: Workbook, record: UserRow) -> None:
    workbook[USERS_SHEET].append(serialize_user(record))


def append_account(workbook: Workbook, record: AccountRow) -> None:
    workbook[ACCOUNTS_SHEET].append(serialize_account(record))


def append_transaction(workbook: Workbook, record: TransactionRow) -> None:
    workbook[TRANSACTIONS_SHEET].append(serialize_transaction(record))


def update_account(workbook: Workbook, account_id: str, *, field_values: dict[str, Any]) -> None:
    """Update selected columns for an existing account.

    Args:
        workbook (Workbook): Workbook containing the accounts sheet.
        account_id (str): Identifier used to locate the target row.
        field_values (dict[str, Any]): Mapping of column names to replacement
            values.

    Raises:
        KeyError: If the account or any referenced column cannot be found.
    """

    row_index = locate_row(workbook, ACCOUNTS_SHEET, "AccountID", account_id)
    if row_index is None:
        raise KeyError(f"Account not found: {account_id}")

    sheet = workbook[ACCOUNTS_SHEET]
    header_map = _header_map(sheet)
    for field, value in field_values.items():
        if field not in header_map:
            raise KeyError(f"Unknown account field: {field}")
        sheet.cell(row=row_index, column=header_map[field], value=value)


def _header_map(sheet) -> dict[Any, int]:
    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find the 1-based row index whose ``key_column`` equals ``key_value``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_map = _header_map(sheet)
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]
    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row[key_col_index - 1] is not None and str(row[key_col_index - 1]) == key_value:
            return row_idx

    return None


def read_machine_state(workbook: Workbook, *, machine_id: Optional[str] = None) -> CashReserveState:
    """Assemble a :class:`CashReserveState` from the machine sheets.

    The ``Machine`` sheet holds a single row; when it is empty the defaults
    of :class:`CashReserveState` apply, with ``machine_id`` as the identifier.
    Ink and paper values are clamped on the way in so a hand-edited workbook
    cannot introduce out-of-range levels.
    """

    machine_rows = list(_iter_data_rows(workbook, MACHINE_SHEET))
    notes = {}
    for raw in _iter_data_rows(workbook, CASSETTES_SHEET):
        denomination, count = raw[0], raw[1]
        notes[int(denomination)] = int(count or 0)

    if not machine_rows:
        log.warning("Machine sheet is empty; using default machine state")
        return CashReserveState(notes=notes, machine_id=machine_id or CashReserveState().machine_id)

    stored_id, software_version, ink_raw, paper_raw = machine_rows[0][:4]
    return CashReserveState(
        notes=notes,
        ink_level=clamp_ink(ink_raw or 0),
        paper_level=clamp_paper(paper_raw or 0),
        machine_id=str(stored_id) if stored_id is not None else (machine_id or CashReserveState().machine_id),
        software_version=str(software_version) if software_version is not None else DEFAULT_SOFTWARE_VERSION,
    )


def write_machine_state(workbook: Workbook, state: CashReserveState) -> None:
    """Replace the contents of the ``Machine`` and ``Cassettes`` sheets."""

    rows = {
        MACHINE_SHEET: [serialize_machine(state)],
        CASSETTES_SHEET: [[denomination, state.notes[denomination]] for denomination in sorted(state.notes, reverse=True)],
    }
    for sheet_name, values in rows.items():
        sheet = workbook[sheet_name]
        if sheet.max_row > 1:
            sheet.delete_rows(2, sheet.max_row - 1)
        for row_index, row_values in enumerate(values, start=2):
            for column_index, value in enumerate(row_values, start=1):
                sheet.cell(row=row_index, column=column_index, value=value)


def to_money(raw: object) -> Decimal:
    """Normalise a worksheet cell into a two-place :class:`Decimal`.

    Raises:
        ValueError: If the cell holds something that is not a number.
    """

    if raw is None or raw == "":
        return ZERO
    try:
        return Decimal(str(raw)).quantize(CENTS)
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary value: {raw!r}") from exc


def serialize_user(record: UserRow) -> list[object]:
    return [record.user_id, record.name, record.pin_hash, record.role.value]


def serialize_account(record: AccountRow) -> list[object]:
    return [record.account_id, record.owner_id, record.account_kind.value, record.balance]


def serialize_transaction(record: TransactionRow) -> list[object]:
    """Arrange a transaction in the ``Transactions`` column order.

    The timestamp is written as ISO-8601 text so the timezone survives the
    round trip through Excel.
    """

    return [
        record.transaction_id,
        record.timestamp.isoformat(),
        record.kind.value,
        record.amount,
        record.source_account_id,
        record.destination_account_id,
    ]


def serialize_machine(state: CashReserveState) -> list[object]:
    return [state.machine_id, state.software_version, state.ink_level, state.paper_level]


def deserialize_user(raw_row: Sequence[object]) -> UserRow:
    user_id, name, pin_hash, role = raw_row[:4]
    return UserRow(
        user_id=str(user_id),
        name=str(name),
        pin_hash=str(pin_hash) if pin_hash is not None else "",
        role=Role(str(role)),
    )


def deserialize_account(raw_row: Sequence[object]) -> AccountRow:
    """Convert a raw ``Accounts`` row, normalising the balance to two places."""

    account_id, owner_id, account_kind, balance_raw = raw_row[:4]
    return AccountRow(
        account_id=str(account_id),
        owner_id=str(owner_id),
        account_kind=AccountKind(str(account_kind)),
        balance=to_money(balance_raw),
    )


def deserialize_transaction(raw_row: Sequence[object]) -> TransactionRow:
    """Convert a raw ``Transactions`` row into a :class:`TransactionRow`.

    Timestamps written by :func:`serialize_transaction` are ISO strings;
    cells Excel already converted to ``datetime`` are accepted as-is.
    """

    (
        transaction_id,
        timestamp_raw,
        kind,
        amount_raw,
        source_account_id,
        destination_account_id,
    ) = raw_row[:6]

    if isinstance(timestamp_raw, datetime):
        timestamp = timestamp_raw
    else:
        timestamp = datetime.fromisoformat(str(timestamp_raw))

    return TransactionRow(
        transaction_id=str(transaction_id),
        timestamp=timestamp,
        kind=TransactionKind(str(kind)),
        amount=to_money(amount_raw),
        source_account_id=(str(source_account_id) if source_account_id is not None else None),
        destination_account_id=(str(destination_account_id) if destination_account_id is not None else None),
    )
