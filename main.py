"""
paydispatch — payment dispatch client.

Loads a chart of accounts, routes each account to the payment provider
configured for it, submits one payment per account, and writes a
normalised result report.

Providers
---------
  stub             — Dry-run; logs every charge, no external calls
  stripe           — Stripe Charges API (charge provider)
  modern_treasury  — Modern Treasury payment orders (HTTP, bearer token)

Usage
-----
    python main.py                          # Dispatch using config/settings.json
    python main.py --accounts FILE          # Override the accounts file (JSON/YAML)
    python main.py --output FILE            # Override the results report path
    python main.py --dry-run                # Route everything to the stub adapter
    python main.py --config FILE            # Override config file path
    python main.py --verbose                # Enable DEBUG logging

Exit status is 0 when every account succeeded, 1 otherwise (including any
startup error). Running twice submits every payment twice.
"""

import argparse
import logging
import sys
from typing import Optional

from dotenv import load_dotenv

from paydispatch.accounts import load_accounts
from paydispatch.config import build_dispatcher, load_settings
from paydispatch.dispatcher import summarize
from paydispatch.errors import ConfigurationError
from paydispatch.report import ResultReport


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="paydispatch",
        description="Route chart-of-accounts entries to payment providers",
    )
    parser.add_argument(
        "--config",
        default="config/settings.json",
        metavar="FILE",
        help="Path to settings JSON (default: config/settings.json)",
    )
    parser.add_argument(
        "--accounts",
        default=None,
        metavar="FILE",
        help="Accounts file, JSON or YAML (default: accounts_file from settings)",
    )
    parser.add_argument(
        "--output",
        default=None,
        metavar="FILE",
        help="Results report path (default: output_file from settings)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Route every account to the stub adapter; no external calls",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=False,
        help="Enable DEBUG logging",
    )
    return parser.parse_args(argv)


def _configure_logging(verbose: bool, log_level: str = "INFO") -> None:
    level = logging.DEBUG if verbose else getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    load_dotenv()

    try:
        settings = load_settings(args.config)
    except ConfigurationError as exc:
        logging.basicConfig(level=logging.ERROR)
        logging.error("%s", exc)
        return 1

    _configure_logging(args.verbose, str(settings.get("log_level") or "INFO"))

    accounts_file = args.accounts or settings.get("accounts_file", "config/accounts.yaml")
    output_file   = args.output or settings.get("output_file")

    try:
        dispatcher = build_dispatcher(settings, dry_run=args.dry_run)
        accounts   = load_accounts(accounts_file)
    except ConfigurationError as exc:
        logging.error("Startup error: %s", exc)
        return 1
    except Exception as exc:
        logging.error("Unexpected startup error: %s", exc)
        return 1

    try:
        results = dispatcher.dispatch(accounts)
    finally:
        dispatcher.close()

    summary = summarize(results)
    for result in results:
        if not result.success:
            logging.warning(
                "Account %s (%s) failed [%s]: %s",
                result.account_code, result.provider or "unrouted",
                result.error_type, result.error,
            )

    if output_file:
        ResultReport(output_file).write(results, summary)

    return 0 if summary["failed"] == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
