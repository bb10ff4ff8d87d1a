#!/usr/bin/env python3
"""
============================================================================
Balance Sync v1.0.0
Balance Sync CLI - Link, Sync and List Exchange Accounts
============================================================================

USAGE:
    # Link the account whose keys are in POLONIEX_API_KEY / POLONIEX_API_SECRET
    python -m balance_sync.cli link

    # Replace the rejected keys of institution 1
    python -m balance_sync.cli link --institution-id 1

    # Refresh balances and transfer history of institution 1
    python -m balance_sync.cli sync --institution-id 1

    # Show stored accounts
    python -m balance_sync.cli accounts --show-hidden

Error Codes:
    - EXIT 0: Success
    - EXIT 1: Operation failed (rejected credentials, network, bad response)
    - EXIT 2: Invalid arguments or configuration

============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from balance_sync.accounts_list import BLANK_MESSAGE, AccountsListViewModel
from balance_sync.config import configure_logging, load_sync_config
from balance_sync.credentials import EnvCredentialStore
from balance_sync.database import (
    AccountRepository,
    InstitutionRepository,
    TransactionRepository,
    create_db_engine,
    init_schema,
)
from balance_sync.errors import BalanceSyncError, ConfigurationError, MissingCredentialsError
from balance_sync.exchange.decimal_gateway import format_amount
from balance_sync.sync.orchestrator import ClientFactory, SyncOrchestrator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="balance-sync",
        description="Balance Sync CLI - Link a Poloniex account and sync balances",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
EXAMPLES:
    # Link with credentials from the environment (or .env)
    POLONIEX_API_KEY=... POLONIEX_API_SECRET=... balance-sync link

    # Re-authenticate institution 1 after its keys were rejected
    balance-sync link --institution-id 1

    # Full sync of a linked institution
    balance-sync sync --institution-id 1

    # Balances only
    balance-sync sync --institution-id 1 --balances-only

    # List accounts, including hidden zero balances
    balance-sync accounts --show-hidden
        """
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    link = subparsers.add_parser("link", help="Validate credentials and link the institution")
    link.add_argument(
        "--institution-id",
        type=int,
        help="Re-authenticate an already linked institution instead of adding one"
    )

    sync = subparsers.add_parser("sync", help="Sync a linked institution")
    sync.add_argument(
        "--institution-id",
        type=int,
        required=True,
        help="Local id printed by 'link'"
    )
    sync.add_argument(
        "--balances-only",
        action="store_true",
        help="Skip deposit/withdrawal history"
    )

    accounts = subparsers.add_parser("accounts", help="List stored accounts")
    accounts.add_argument(
        "--show-hidden",
        action="store_true",
        help="Include hidden zero-balance accounts"
    )

    return parser


def _print_accounts(model: AccountsListViewModel, show_hidden: bool) -> None:
    for section in range(model.number_of_sections()):
        institution = model.institution(section)
        flag = "  [NEEDS RE-AUTH]" if institution.password_invalid else ""
        print(f"{institution.name} (id={institution.institution_id}){flag}")

        if show_hidden:
            rows = model.account_repository.accounts(institution.institution_id)
        else:
            rows = model.accounts(section)
        for account in rows:
            hidden = "  (hidden)" if account.is_hidden else ""
            print(
                f"  {account.currency:<8} "
                f"{format_amount(account.current_balance, account.currency)}"
                f"  ~{format_amount(account.btc_value, account.alt_currency)}{hidden}"
            )


def main(
    argv: Optional[List[str]] = None,
    client_factory: Optional[ClientFactory] = None
) -> int:
    """
    Main entry point for the Balance Sync CLI.

    Returns:
        Exit code (0 = success, 1 = failure, 2 = invalid args/config)
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_sync_config()
    except ConfigurationError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return EXIT_INVALID

    configure_logging(config.log_level)

    engine = create_db_engine(config.database_url)
    init_schema(engine)
    institutions = InstitutionRepository(engine)
    accounts = AccountRepository(engine)
    transactions = TransactionRepository(engine)

    if args.command == "accounts":
        model = AccountsListViewModel(institutions, accounts)
        if model.is_blank():
            print(BLANK_MESSAGE)
        else:
            _print_accounts(model, args.show_hidden)
        return EXIT_OK

    store = EnvCredentialStore()

    if args.command == "link":
        try:
            credentials = store.from_environment()
        except MissingCredentialsError as e:
            print(f"[ERROR] {e}", file=sys.stderr)
            return EXIT_INVALID
        if credentials is None:
            print(
                "[ERROR] Set POLONIEX_API_KEY and POLONIEX_API_SECRET to link an account.",
                file=sys.stderr
            )
            return EXIT_INVALID

        existing = None
        if args.institution_id is not None:
            existing = institutions.get(args.institution_id)
            if existing is None:
                print(f"[FAILED] Unknown institution: {args.institution_id}", file=sys.stderr)
                return EXIT_FAILED

        orchestrator = SyncOrchestrator(
            institutions, accounts, transactions, store,
            client_factory=client_factory, config=config
        )
        try:
            result = orchestrator.authenticate(credentials, existing_institution=existing)
        except BalanceSyncError as e:
            print(f"[FAILED] {e}", file=sys.stderr)
            return EXIT_FAILED
        finally:
            orchestrator.close()

        print(
            f"[SUCCESS] Linked institution {result.institution.institution_id} | "
            f"accounts={len(result.accounts)}"
        )
        return EXIT_OK

    # sync
    try:
        orchestrator = SyncOrchestrator.from_institution(
            args.institution_id, institutions, accounts, transactions, store,
            client_factory=client_factory, config=config
        )
    except BalanceSyncError as e:
        print(f"[FAILED] {e}", file=sys.stderr)
        return EXIT_FAILED

    try:
        if args.balances_only:
            synced_accounts = orchestrator.sync_balances()
            synced_transactions = []
        else:
            report = orchestrator.sync_all()
            synced_accounts, synced_transactions = report.accounts, report.transactions
    except BalanceSyncError as e:
        print(f"[FAILED] {e}", file=sys.stderr)
        return EXIT_FAILED
    finally:
        orchestrator.close()

    print(
        f"[SUCCESS] Synced institution {args.institution_id} | "
        f"accounts={len(synced_accounts)} | transactions={len(synced_transactions)}"
    )
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
