#!/usr/bin/env python3
"""
Operator command line for the inventory ledger.

Every subcommand prints JSON on stdout.  Kernel errors print
``{"error": CODE, "message": ...}`` on stderr and exit 1; bad arguments or
configuration exit 2.

Usage:
  python -m scripts.ledger_cli [--config FILE] [--database-url URL] [--product CODE ...] COMMAND

Commands:
  init-db                          create tables and append-only triggers
  submit CODE IN|OUT QTY           record a movement
  adjust CODE DELTA                signed stock correction
  balance CODE                     one balance key
  balances                         paginated balance listing
  product CODE                     every balance of one product
  expiring [--days N]              balances expiring within N days
  movement ID                      one movement
  history                          movement history, newest first
  verify                           reconcile balances against the ledger (exit 1 on drift)
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Sequence
from typing import Any

import yaml
from sqlalchemy.exc import ArgumentError

from inventory_config import get_settings
from inventory_config.bridges import (
    build_balance_selector,
    build_coordinator,
    build_ledger_selector,
    build_product_directory,
    init_engine_from_settings,
)
from inventory_config.schema import LedgerSettings
from inventory_kernel.db.engine import create_tables, reset_engine, session_scope
from inventory_kernel.exceptions import InventoryKernelError
from inventory_kernel.logging_config import LogContext
from inventory_kernel.selectors.balance_selector import ORDER_KEYS, BalanceFilter
from inventory_kernel.selectors.ledger_selector import MovementRecord


def _add_key_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--lot", dest="lot_number", default=None, help="Lot number")
    parser.add_argument(
        "--expires", dest="expiration_date", default=None, help="Expiration date (YYYY-MM-DD)"
    )


def _add_write_options(parser: argparse.ArgumentParser) -> None:
    _add_key_options(parser)
    parser.add_argument("--note", default=None, help="Free-text note")
    parser.add_argument("--idempotency-key", default=None, help="Client idempotency key")
    parser.add_argument("--actor", dest="actor_id", default=None, help="Caller identity")


def _add_page_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--limit", type=int, default=None)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ledger_cli", description="Inventory ledger operator CLI")
    p.add_argument("--config", default=None, help="YAML settings file")
    p.add_argument("--database-url", default=None, help="Overrides database.url")
    p.add_argument(
        "--product",
        dest="products",
        action="append",
        default=[],
        help="Known product code (repeatable), added to the configured list",
    )
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and triggers")

    submit = sub.add_parser("submit", help="Record a movement")
    submit.add_argument("product_code")
    submit.add_argument("direction", choices=["IN", "OUT"])
    submit.add_argument("quantity", type=int)
    _add_write_options(submit)

    adjust = sub.add_parser("adjust", help="Signed stock adjustment")
    adjust.add_argument("product_code")
    adjust.add_argument("delta", type=int)
    _add_write_options(adjust)

    balance = sub.add_parser("balance", help="Show one balance key")
    balance.add_argument("product_code")
    _add_key_options(balance)

    balances = sub.add_parser("balances", help="List balances")
    balances.add_argument("--code", dest="product_code", default=None)
    balances.add_argument("--lot", dest="lot_number", default=None)
    balances.add_argument("--from", dest="expiration_from", default=None)
    balances.add_argument("--to", dest="expiration_to", default=None)
    balances.add_argument("--partial", action="store_true", help="Substring match on code and lot")
    balances.add_argument("--order-by", default="updated_at", choices=ORDER_KEYS)
    balances.add_argument("--sort", dest="sort_order", default="DESC", choices=["ASC", "DESC"])
    _add_page_options(balances)

    product = sub.add_parser("product", help="All balances of one product")
    product.add_argument("product_code")
    product.add_argument("--non-empty", action="store_true", help="Hide zero balances")

    expiring = sub.add_parser("expiring", help="Balances expiring soon")
    expiring.add_argument("--days", type=int, default=None)

    movement = sub.add_parser("movement", help="Show one movement")
    movement.add_argument("movement_id")

    history = sub.add_parser("history", help="Movement history")
    history.add_argument("--code", dest="product_code", default=None)
    _add_key_options(history)
    history.add_argument("--direction", default=None, choices=["IN", "OUT"])
    _add_page_options(history)

    sub.add_parser("verify", help="Reconcile balances against the ledger")
    return p


def _settings(args: argparse.Namespace) -> LedgerSettings:
    environ = None
    if args.database_url:
        environ = {**os.environ, "INVENTORY_DATABASE_URL": args.database_url}
    return get_settings(args.config, environ=environ)


def _run(args: argparse.Namespace, settings: LedgerSettings) -> tuple[int, Any]:
    if args.command == "init-db":
        create_tables(install_triggers=True)
        return 0, {"status": "ok"}

    if args.command in ("submit", "adjust"):
        directory = build_product_directory(settings)
        for code in args.products:
            directory.add(code)
        coordinator = build_coordinator(settings, product_directory=directory)
        common = dict(
            lot_number=args.lot_number,
            expiration_date=args.expiration_date,
            note=args.note,
            idempotency_key=args.idempotency_key,
            actor_id=args.actor_id,
        )
        if args.command == "submit":
            movement = coordinator.submit(args.product_code, args.direction, args.quantity, **common)
        else:
            movement = coordinator.adjust(args.product_code, args.delta, **common)
        return 0, MovementRecord.from_model(movement).to_dict()

    with session_scope() as session:
        balances = build_balance_selector(session, settings)
        ledger = build_ledger_selector(session, settings)

        if args.command == "balance":
            view = balances.get_balance(args.product_code, args.lot_number, args.expiration_date)
            if view is None:
                return 0, {
                    "product_code": args.product_code,
                    "lot_number": args.lot_number,
                    "expiration_date": args.expiration_date,
                    "quantity": 0,
                    "version": 0,
                }
            return 0, view.to_dict()

        if args.command == "balances":
            page = balances.list_balances(
                BalanceFilter(
                    product_code=args.product_code,
                    lot_number=args.lot_number,
                    expiration_from=args.expiration_from,
                    expiration_to=args.expiration_to,
                    partial_match=args.partial,
                ),
                page=args.page,
                limit=args.limit,
                order_by=args.order_by,
                sort_order=args.sort_order,
            )
            return 0, page.to_dict()

        if args.command == "product":
            return 0, balances.balances_for_product(
                args.product_code, include_empty=not args.non_empty
            ).to_dict()

        if args.command == "expiring":
            days = settings.expiring_window_days if args.days is None else args.days
            return 0, [item.to_dict() for item in balances.expiring_soon(days)]

        if args.command == "movement":
            return 0, ledger.get_movement(args.movement_id).to_dict()

        if args.command == "history":
            return 0, ledger.list_movements(
                product_code=args.product_code,
                lot_number=args.lot_number,
                expiration_date=args.expiration_date,
                direction=args.direction,
                page=args.page,
                limit=args.limit,
            ).to_dict()

        if args.command == "verify":
            discrepancies = ledger.reconcile()
            return (0 if not discrepancies else 1), {
                "ok": not discrepancies,
                "discrepancies": [d.to_dict() for d in discrepancies],
            }

    raise ValueError(f"Unknown command {args.command!r}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = _settings(args)
        init_engine_from_settings(settings)
    except (OSError, ValueError, ArgumentError, yaml.YAMLError) as exc:
        print(json.dumps({"error": "CONFIGURATION_ERROR", "message": str(exc)}), file=sys.stderr)
        return 2

    try:
        with LogContext.bind(actor_id=getattr(args, "actor_id", None)):
            status, payload = _run(args, settings)
    except InventoryKernelError as exc:
        print(json.dumps({"error": exc.code, "message": str(exc)}), file=sys.stderr)
        return 1
    finally:
        reset_engine()

    print(json.dumps(payload, indent=2, default=str))
    return status


if __name__ == "__main__":
    sys.exit(main())
