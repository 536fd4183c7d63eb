"""Shared pytest fixtures and utilities for ATM ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from atm_ledger import auth, constants, data_manager, engine, runtime  # noqa: E402
from atm_ledger.constants import AccountKind, Role  # noqa: E402
from atm_ledger.setup_workbook import build_machine_workbook, create_machine_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
DEFAULT_MACHINE_ID = "ATM-TEST"
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "MachineID = {machine_id}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "SoftwareVersion = {software_version}\n"
)

CUSTOMER_NAME = "alice"
CUSTOMER_ID = "U-ALICE"
CUSTOMER_PIN = "1234"
OTHER_CUSTOMER_NAME = "bob"
OTHER_CUSTOMER_ID = "U-BOB"
OTHER_CUSTOMER_PIN = "4321"
TECHNICIAN_NAME = "tina"
TECHNICIAN_ID = "U-TINA"
TECHNICIAN_PIN = "9999"


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    machine_id: str
    schema_version: str
    software_version: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized machine workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        machine_id: str = DEFAULT_MACHINE_ID,
        software_version: str = "1.0",
        filename: str = "atm_workbook.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_machine_workbook(
            workbook_path,
            machine_id=machine_id,
            software_version=software_version,
            overwrite=True,
        )
        return workbook_path

    return _create_workbook


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        machine_id: str = DEFAULT_MACHINE_ID,
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        software_version: str = "1.0",
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(
            subdir=f"bundle_{bundle_id}",
            machine_id=machine_id,
            software_version=software_version,
        )
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                machine_id=machine_id,
                schema_version=schema_version,
                software_version=software_version,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            machine_id=machine_id,
            schema_version=schema_version,
            software_version=software_version,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


def seed_customers(context: runtime.RuntimeContext) -> None:
    """Register the standard cast of users and accounts used across tests.

    alice owns ACC-1 (checking, 1000.00) and ACC-2 (savings, 500.00); bob
    owns ACC-3 (checking, 200.00); tina is a technician.
    """

    auth.register_user(context.users, user_id=CUSTOMER_ID, name=CUSTOMER_NAME, pin=CUSTOMER_PIN, role=Role.CUSTOMER)
    auth.register_user(
        context.users,
        user_id=OTHER_CUSTOMER_ID,
        name=OTHER_CUSTOMER_NAME,
        pin=OTHER_CUSTOMER_PIN,
        role=Role.CUSTOMER,
    )
    auth.register_user(
        context.users,
        user_id=TECHNICIAN_ID,
        name=TECHNICIAN_NAME,
        pin=TECHNICIAN_PIN,
        role=Role.TECHNICIAN,
    )
    context.ledger.open_account("ACC-1", CUSTOMER_ID, AccountKind.CHECKING, Decimal("1000.00"))
    context.ledger.open_account("ACC-2", CUSTOMER_ID, AccountKind.SAVINGS, Decimal("500.00"))
    context.ledger.open_account("ACC-3", OTHER_CUSTOMER_ID, AccountKind.CHECKING, Decimal("200.00"))


@pytest.fixture
def runtime_context(config_file: Path) -> runtime.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = runtime.load_runtime_context(config_file)
    runtime.ensure_schema_version(context)
    return context


@pytest.fixture
def seeded_config(config_factory: Callable[..., ConfigBundle]) -> Callable[..., ConfigBundle]:
    """Create a config bundle whose workbook already holds the standard users and accounts."""

    def _create(**kwargs) -> ConfigBundle:
        bundle = config_factory(**kwargs)
        context = runtime.load_runtime_context(bundle.config_path)
        seed_customers(context)
        runtime.persist_context(context)
        return bundle

    return _create


# ---------------------------------------------------------------------------
# In-memory runtime fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "atm_workbook.xlsx",
        machine_id=DEFAULT_MACHINE_ID,
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def memory_workbook():
    """Return a freshly bootstrapped workbook that is never written to disk."""

    return build_machine_workbook(machine_id=DEFAULT_MACHINE_ID)


@pytest.fixture
def context(settings: data_manager.ConfigSettings, memory_workbook) -> runtime.RuntimeContext:
    """Assemble a seeded runtime context over an in-memory workbook."""

    built = runtime.build_context(settings, memory_workbook, autosave=False)
    seed_customers(built)
    return built


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``engine.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(engine, "datetime", _FixedDateTime)
        return moment

    return _apply


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="atm-cli", description="ATM CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")
