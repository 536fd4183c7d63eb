"""Command-line entry points for the ATM ledger.

All orchestration in this module is limited to argparse wiring, signing the
caller in, and translating command-line arguments into calls on the services
of a :class:`~atm_ledger.runtime.RuntimeContext`. Receipts and reports are
printed to stdout; failures are printed to stderr and mapped to exit codes.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
import sys
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import auth, data_manager, errors, log, receipts
from .constants import DENOMINATIONS, AccountKind, Role
from .errors import ErrorKind, Failure
from .ledger import to_amount
from .runtime import RuntimeContext, ensure_schema_version, load_runtime_context

Executor = Callable[[RuntimeContext, argparse.Namespace, Optional[data_manager.UserRow]], int]

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FAILURE = 2
EXIT_MISSING_FILE = 3
EXIT_UNAUTHORIZED = 4


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed.

    ``role`` names who must sign in with ``--user``/``--pin`` before the
    command runs; ``None`` means the command needs no sign-in.
    """

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Executor
    role: Optional[Role] = None


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="atm-cli",
        description="Command-line teller and maintenance tools for the ATM workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upward from the working directory otherwise).",
    )
    parser.add_argument("--user", default=None, help="Name to sign in with.")
    parser.add_argument("--pin", default=None, help="PIN for --user.")
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    customer_specs = register_customer_commands(subparsers)
    technician_specs = register_technician_commands(subparsers)
    provisioning_specs = register_provisioning_commands(subparsers)
    return build_command_table(
        [*customer_specs.values(), *technician_specs.values(), *provisioning_specs.values()]
    )


def _register_all(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    specs: Dict[str, CommandSpec],
) -> Dict[str, CommandSpec]:
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_customer_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare the teller commands a signed-in customer may run."""
    return _register_all(
        subparsers,
        {
            "balance": register_balance_command(subparsers),
            "withdraw": register_withdraw_command(subparsers),
            "deposit": register_deposit_command(subparsers),
            "transfer": register_transfer_command(subparsers),
            "history": register_history_command(subparsers),
        },
    )


def register_technician_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare the maintenance commands a signed-in technician may run."""
    return _register_all(
        subparsers,
        {
            "status": register_status_command(subparsers),
            "replenish": register_replenish_command(subparsers),
            "refill-ink": register_refill_ink_command(subparsers),
            "restock-paper": register_restock_paper_command(subparsers),
            "update-software": register_update_software_command(subparsers),
        },
    )


def register_provisioning_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare commands that create users and accounts in the workbook."""
    return _register_all(
        subparsers,
        {
            "add-user": register_add_user_command(subparsers),
            "open-account": register_open_account_command(subparsers),
        },
    )


def _add_receipt_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--receipt", action="store_true", help="Print a receipt (uses ink and paper).")


def register_balance_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``balance``."""
    name = "balance"
    help_text = "Show the balance of one of your accounts."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--account-id", required=True)
        _add_receipt_flag(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_balance, role=Role.CUSTOMER)


def register_withdraw_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``withdraw``."""
    name = "withdraw"
    help_text = "Withdraw cash from one of your accounts."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--account-id", required=True)
        parser.add_argument("--amount", required=True)
        _add_receipt_flag(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_withdraw, role=Role.CUSTOMER)


def register_deposit_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``deposit``."""
    name = "deposit"
    help_text = "Deposit cash into one of your accounts."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--account-id", required=True)
        parser.add_argument("--amount", required=True)
        _add_receipt_flag(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_deposit, role=Role.CUSTOMER)


def register_transfer_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``transfer``."""
    name = "transfer"
    help_text = "Transfer money from one of your accounts to another account."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--from-account", required=True)
        parser.add_argument("--to-account", required=True)
        parser.add_argument("--amount", required=True)
        _add_receipt_flag(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_transfer, role=Role.CUSTOMER)


def register_history_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``history``."""
    name = "history"
    help_text = "List the recorded transactions of one of your accounts."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--account-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_history, role=Role.CUSTOMER)


def register_status_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``status``."""
    name = "status"
    help_text = "Display cash, ink, paper, and software version."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_status, role=Role.TECHNICIAN)


def register_replenish_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``replenish``."""
    name = "replenish"
    help_text = "Load notes into the cassettes."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        for denomination in DENOMINATIONS:
            parser.add_argument(
                f"--notes-{denomination}",
                dest=f"notes_{denomination}",
                type=int,
                default=0,
                help=f"Number of {denomination} notes to add.",
            )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_replenish, role=Role.TECHNICIAN)


def register_refill_ink_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``refill-ink``."""
    name = "refill-ink"
    help_text = "Refill the printer ink to 100%."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_refill_ink, role=Role.TECHNICIAN)


def register_restock_paper_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``restock-paper``."""
    name = "restock-paper"
    help_text = "Add sheets of receipt paper."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sheets", type=int, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar, execute=run_restock_paper, role=Role.TECHNICIAN
    )


def register_update_software_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-software``."""
    name = "update-software"
    help_text = "Install a new software version on the machine."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--version", dest="new_version", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar, execute=run_update_software, role=Role.TECHNICIAN
    )


def register_add_user_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-user``."""
    name = "add-user"
    help_text = "Register a customer or technician in the Users sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--user-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--new-pin", required=True)
        parser.add_argument(
            "--role",
            choices=[member.value for member in Role],
            default=Role.CUSTOMER.value,
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_user)


def register_open_account_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``open-account``."""
    name = "open-account"
    help_text = "Open an account for an existing user."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--account-id", required=True)
        parser.add_argument("--owner-id", required=True)
        parser.add_argument(
            "--kind",
            choices=[member.value for member in AccountKind],
            default=AccountKind.CHECKING.value,
        )
        parser.add_argument("--opening-balance", default="0")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_open_account)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def sign_in(
    context: RuntimeContext,
    args: argparse.Namespace,
    role: Role,
) -> data_manager.UserRow | Failure:
    """Authenticate ``--user``/``--pin`` and check the signed-in role."""
    name = getattr(args, "user", None)
    pin = getattr(args, "pin", None)
    if not name or pin is None:
        return errors.unauthorized("Sign in with --user and --pin to run this command.")
    user = auth.authenticate(context.users, name, pin)
    if isinstance(user, Failure):
        return user
    denied = auth.require_role(user, role)
    if denied is not None:
        return denied
    return user


def dispatch_command(
    context: RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Sign the caller in when required, then run the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")

    user: Optional[data_manager.UserRow] = None
    if spec.role is not None:
        signed_in = sign_in(context, args, spec.role)
        if isinstance(signed_in, Failure):
            return report_failure(signed_in)
        user = signed_in
    return spec.execute(context, args, user)


def failure_exit_code(failure: Failure) -> int:
    """Map a domain failure onto the process exit code."""
    if failure.kind is ErrorKind.UNAUTHORIZED:
        return EXIT_UNAUTHORIZED
    return EXIT_FAILURE


def report_failure(failure: Failure) -> int:
    print(f"[ERROR] {failure.message}", file=sys.stderr)
    return failure_exit_code(failure)


def check_ownership(
    context: RuntimeContext,
    user: data_manager.UserRow,
    account_id: str,
) -> Optional[Failure]:
    """Return a failure unless ``account_id`` exists and belongs to ``user``."""
    account = context.ledger.get_account(account_id)
    if isinstance(account, Failure):
        return account
    if account.owner_id != user.user_id:
        log.warning("User '%s' attempted to use account '%s'", user.user_id, account_id)
        return errors.unauthorized(f"Account {account_id} does not belong to {user.name}.")
    return None


def translate_amount(args: argparse.Namespace) -> Decimal | Failure:
    """Translate the ``--amount`` argument into a money amount."""
    return to_amount(args.amount)


def translate_replenish(args: argparse.Namespace) -> Dict[int, int]:
    """Collect the ``--notes-<denomination>`` arguments into a note mapping."""
    return {denomination: getattr(args, f"notes_{denomination}", 0) for denomination in DENOMINATIONS}


def print_receipt(context: RuntimeContext, rendered: str) -> None:
    """Print ``rendered`` if the machine has ink and paper for it."""
    shortage = context.engine.claim_receipt_resources()
    if shortage is not None:
        print(f"[WARNING] {shortage.message}", file=sys.stderr)
        return
    print(rendered)


def run_balance(context: RuntimeContext, args: argparse.Namespace, user: Optional[data_manager.UserRow]) -> int:
    """Execute the balance inquiry workflow."""
    denied = check_ownership(context, user, args.account_id)
    if denied is not None:
        return report_failure(denied)
    inquiry = context.engine.balance_inquiry(args.account_id, print_receipt=args.receipt)
    if isinstance(inquiry, Failure):
        return report_failure(inquiry)

    print(f"Current balance: {receipts.format_money(inquiry.balance)}")
    if inquiry.receipt_printed:
        print(receipts.format_balance_receipt(inquiry.account_id, inquiry.balance))
    elif inquiry.receipt_failure is not None:
        print(f"[WARNING] {inquiry.receipt_failure.message}", file=sys.stderr)
    return EXIT_OK


def run_withdraw(context: RuntimeContext, args: argparse.Namespace, user: Optional[data_manager.UserRow]) -> int:
    """Execute the withdrawal workflow."""
    denied = check_ownership(context, user, args.account_id)
    if denied is not None:
        return report_failure(denied)
    amount = translate_amount(args)
    if isinstance(amount, Failure):
        return report_failure(amount)
    withdrawal = context.engine.withdraw(args.account_id, amount)
    if isinstance(withdrawal, Failure):
        return report_failure(withdrawal)

    print(f"Please take your cash: {receipts.format_money(withdrawal.transaction.amount)}")
    if args.receipt:
        print_receipt(context, receipts.format_transaction_receipt(withdrawal.transaction, notes=withdrawal.notes))
    return EXIT_OK


def run_deposit(context: RuntimeContext, args: argparse.Namespace, user: Optional[data_manager.UserRow]) -> int:
    """Execute the deposit workflow."""
    denied = check_ownership(context, user, args.account_id)
    if denied is not None:
        return report_failure(denied)
    amount = translate_amount(args)
    if isinstance(amount, Failure):
        return report_failure(amount)
    transaction = context.engine.deposit(args.account_id, amount)
    if isinstance(transaction, Failure):
        return report_failure(transaction)

    print(f"Deposited {receipts.format_money(transaction.amount)}")
    if args.receipt:
        print_receipt(context, receipts.format_transaction_receipt(transaction))
    return EXIT_OK


def run_transfer(context: RuntimeContext, args: argparse.Namespace, user: Optional[data_manager.UserRow]) -> int:
    """Execute the transfer workflow."""
    denied = check_ownership(context, user, args.from_account)
    if denied is not None:
        return report_failure(denied)
    amount = translate_amount(args)
    if isinstance(amount, Failure):
        return report_failure(amount)
    transaction = context.engine.transfer(args.from_account, args.to_account, amount)
    if isinstance(transaction, Failure):
        return report_failure(transaction)

    print(
        f"Transferred {receipts.format_money(transaction.amount)} "
        f"from {transaction.source_account_id} to {transaction.destination_account_id}"
    )
    if args.receipt:
        print_receipt(context, receipts.format_transaction_receipt(transaction))
    return EXIT_OK


def run_history(context: RuntimeContext, args: argparse.Namespace, user: Optional[data_manager.UserRow]) -> int:
    """Execute the transaction history report."""
    denied = check_ownership(context, user, args.account_id)
    if denied is not None:
        return report_failure(denied)
    transactions = context.engine.history(args.account_id)
    if isinstance(transactions, Failure):
        return report_failure(transactions)
    print(receipts.format_history(args.account_id, transactions))
    return EXIT_OK


def _finish_maintenance(
    context: RuntimeContext,
    user: Optional[data_manager.UserRow],
    outcome: object,
) -> int:
    if isinstance(outcome, Failure):
        return report_failure(outcome)
    print(receipts.format_status_report(outcome))
    technician = user.name if user is not None else "unknown"
    print(receipts.format_maintenance_report(technician, context.maintenance.actions))
    return EXIT_OK


def run_status(context: RuntimeContext, args: argparse.Namespace, user: Optional[data_manager.UserRow]) -> int:
    """Execute the machine status report."""
    state = context.maintenance.status()
    if isinstance(state, Failure):
        return report_failure(state)
    print(receipts.format_status_report(state))
    return EXIT_OK


def run_replenish(context: RuntimeContext, args: argparse.Namespace, user: Optional[data_manager.UserRow]) -> int:
    """Execute the cash replenishment workflow."""
    return _finish_maintenance(context, user, context.maintenance.replenish_cash(translate_replenish(args)))


def run_refill_ink(context: RuntimeContext, args: argparse.Namespace, user: Optional[data_manager.UserRow]) -> int:
    """Execute the ink refill workflow."""
    return _finish_maintenance(context, user, context.maintenance.refill_ink())


def run_restock_paper(context: RuntimeContext, args: argparse.Namespace, user: Optional[data_manager.UserRow]) -> int:
    """Execute the paper restock workflow."""
    return _finish_maintenance(context, user, context.maintenance.restock_paper(args.sheets))


def run_update_software(
    context: RuntimeContext,
    args: argparse.Namespace,
    user: Optional[data_manager.UserRow],
) -> int:
    """Execute the software update workflow."""
    return _finish_maintenance(context, user, context.maintenance.update_software(args.new_version))


def run_add_user(context: RuntimeContext, args: argparse.Namespace, user: Optional[data_manager.UserRow]) -> int:
    """Execute the add-user workflow."""
    created = auth.register_user(
        context.users,
        user_id=args.user_id,
        name=args.name,
        pin=args.new_pin,
        role=Role(args.role),
    )
    print(f"Registered {created.role.value.lower()} '{created.name}' ({created.user_id})")
    return EXIT_OK


def run_open_account(context: RuntimeContext, args: argparse.Namespace, user: Optional[data_manager.UserRow]) -> int:
    """Execute the open-account workflow."""
    opening_balance = to_amount(args.opening_balance)
    if isinstance(opening_balance, Failure):
        return report_failure(opening_balance)
    account = context.ledger.open_account(
        args.account_id,
        args.owner_id,
        AccountKind(args.kind),
        opening_balance,
    )
    if isinstance(account, Failure):
        return report_failure(account)
    print(
        f"Opened {account.account_kind.value.lower()} account {account.account_id} "
        f"with balance {receipts.format_money(account.balance)}"
    )
    return EXIT_OK


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    log.error("%s", error)
    print(f"[ERROR] {error}", file=sys.stderr)
    if isinstance(error, FileNotFoundError):
        return EXIT_MISSING_FILE
    return EXIT_ERROR


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution.

    Every store write saves the workbook straight away, so a failure after a
    committed step never loses the steps before it.
    """
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        ensure_schema_version(context)
        return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
