"""Wiring of configuration, workbook, stores, and services.

A :class:`RuntimeContext` is the single place where the machine's
:class:`~atm_ledger.cash_reserve.CashReserve` is created; the engine and the
maintenance service receive that same instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from openpyxl.workbook import Workbook

from . import data_manager, log
from .audit import AuditTrail
from .cash_reserve import CashReserve
from .constants import EXPECTED_SCHEMA_VERSION
from .engine import TransactionEngine
from .ledger import Ledger
from .maintenance import MaintenanceService
from .stores import (
    WorkbookAccountStore,
    WorkbookMachineStateStore,
    WorkbookTransactionStore,
    WorkbookUserStore,
)


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, the live workbook, and the services built on it."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    reserve: CashReserve
    ledger: Ledger
    audit: AuditTrail
    engine: TransactionEngine
    maintenance: MaintenanceService
    users: WorkbookUserStore


def build_context(
    settings: data_manager.ConfigSettings,
    workbook: Workbook,
    *,
    autosave: bool = True,
) -> RuntimeContext:
    """Create the stores and services for ``workbook``.

    Args:
        settings (data_manager.ConfigSettings): Resolved configuration.
        workbook (Workbook): Workbook holding every sheet of
            :data:`data_manager.SHEET_COLUMNS`.
        autosave (bool): When ``True`` every store write saves the workbook
            to ``settings.data_file`` straight away.

    Returns:
        RuntimeContext: Ready-to-use services sharing one cash reserve.
    """

    def _save() -> None:
        data_manager.save_workbook(workbook, destination=settings.data_file)

    on_write = _save if autosave else None
    accounts = WorkbookAccountStore(workbook, on_write)
    transactions = WorkbookTransactionStore(workbook, on_write)
    machine_store = WorkbookMachineStateStore(workbook, on_write, machine_id=settings.machine_id)
    users = WorkbookUserStore(workbook, on_write)

    reserve = CashReserve.from_state(machine_store.load())
    ledger = Ledger(accounts)
    audit = AuditTrail(transactions)
    engine = TransactionEngine(ledger, reserve, audit, machine_store)
    maintenance = MaintenanceService(reserve, machine_store)
    log.debug("Built services for machine '%s' (%r)", reserve.machine_id, reserve)
    return RuntimeContext(
        settings=settings,
        workbook=workbook,
        reserve=reserve,
        ledger=ledger,
        audit=audit,
        engine=engine,
        maintenance=maintenance,
        users=users,
    )


def load_runtime_context(config_path: Optional[Path] = None, *, autosave: bool = True) -> RuntimeContext:
    """Resolve ``config.ini``, open the workbook, and build the services.

    Args:
        config_path (Path | None): Optional override path for the
            configuration file; otherwise the data layer searches upward from
            the working directory.
        autosave (bool): Forwarded to :func:`build_context`.

    Returns:
        RuntimeContext: Fully populated context.

    Raises:
        FileNotFoundError: If the configuration file or workbook is missing.
        KeyError: When configuration options or workbook sheets are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return build_context(settings, workbook, autosave=autosave)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Refuse to operate on a workbook declared with another schema version.

    Raises:
        RuntimeError: If ``config.ini`` declares a schema version other than
            :data:`EXPECTED_SCHEMA_VERSION`.
    """

    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Save the workbook to the configured data file."""

    data_manager.save_workbook(context.workbook, destination=context.settings.data_file)
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext, *, autosave: bool = True) -> RuntimeContext:
    """Reopen the workbook from disk and rebuild every service.

    Unsaved in-memory changes are discarded, including the cash reserve.
    """

    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return build_context(context.settings, workbook, autosave=autosave)
