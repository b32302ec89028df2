"""CLI entry point for the order-book tracker."""

import argparse
import json
import logging

from orderbook.config.loader import get_config_value, load_config
from orderbook.daemon import FetchDaemon, daemon_status, stop_daemon
from orderbook.models.common import OrderStatus, RunSource
from orderbook.pipeline.fetch_pipeline import FetchPipeline
from orderbook.reporting.formatters import summary_payload
from orderbook.storage import order_repo
from orderbook.storage.database import connect, run_migrations

DEFAULT_CONFIG = "ops/configs/default.yaml"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="orderbook",
        description="Order-book fetch and reconciliation tracker",
    )
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG, help="Config YAML path"
    )
    parser.add_argument("--db", default=None, help="SQLite DB path (overrides config)")

    sub = parser.add_subparsers(dest="command")

    # run
    run_p = sub.add_parser("run", help="Run one fetch/reconcile cycle")
    run_p.add_argument(
        "--source",
        choices=[s.value for s in RunSource],
        default=RunSource.MANUAL.value,
    )
    run_p.add_argument("--trace-id", default=None, help="Correlation id for logs")

    # orders
    orders_p = sub.add_parser("orders", help="List persisted orders")
    orders_p.add_argument(
        "--status", choices=[s.value for s in OrderStatus], default=None
    )
    orders_p.add_argument("--json", action="store_true", help="Print JSON")

    # init-db
    sub.add_parser("init-db", help="Create the order_books table")

    # daemon
    daemon_p = sub.add_parser("daemon", help="Run on a fixed interval")
    daemon_p.add_argument("--interval", type=int, default=None, help="Seconds between runs")
    daemon_p.add_argument("--stop", action="store_true", help="Stop a running daemon")
    daemon_p.add_argument("--status", action="store_true", help="Show daemon status")

    # config show / config get
    config_p = sub.add_parser("config", help="Config operations")
    config_sub = config_p.add_subparsers(dest="config_command")
    config_sub.add_parser("show", help="Display current config")
    get_p = config_sub.add_parser("get", help="Print one config value")
    get_p.add_argument("key", help="Dotted key, e.g. fetch.max_attempts")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)
    db_path = args.db or config.ops.db_path

    if args.command == "run":
        return _cmd_run(config, db_path, args)
    elif args.command == "orders":
        return _cmd_orders(db_path, args)
    elif args.command == "init-db":
        return _cmd_init_db(db_path)
    elif args.command == "daemon":
        return _cmd_daemon(config, db_path, args)
    elif args.command == "config":
        return _cmd_config(config, args)
    else:
        parser.print_help()
        return 1


def _cmd_run(config, db_path, args) -> int:
    pipeline = FetchPipeline(config, db_path)
    summary = pipeline.run(source=args.source, trace_id=args.trace_id)
    print(json.dumps(summary_payload(summary), indent=2))
    return 0 if summary.success else 1


def _cmd_orders(db_path, args) -> int:
    conn = connect(db_path)
    run_migrations(conn)
    status = OrderStatus(args.status) if args.status else None
    orders = order_repo.list_orders(conn, status)
    conn.close()

    if args.json:
        print(json.dumps({
            "success": True,
            "data": [o.to_dict() for o in orders],
            "total": len(orders),
            "message": f"Retrieved {len(orders)} orders successfully",
        }, indent=2))
        return 0

    print(f"Orders: {len(orders)}")
    for o in orders:
        print(
            f"  {o.external_id} {o.side:<4} {o.status:<5} "
            f"{o.price} x {o.quantity} = {o.funds} ({o.display_name})"
        )
    return 0


def _cmd_init_db(db_path) -> int:
    conn = connect(db_path)
    applied = run_migrations(conn)
    counts = order_repo.count_by_status(conn)
    conn.close()
    if applied:
        print(f"Database initialized: applied {', '.join(applied)}")
    else:
        print("Database already up to date")
    print(f"Open: {counts.get('open', 0)} | Closed: {counts.get('close', 0)}")
    return 0


def _cmd_daemon(config, db_path, args) -> int:
    if args.stop:
        return stop_daemon()
    if args.status:
        return daemon_status()
    FetchDaemon(config, db_path, interval=args.interval).start()
    return 0


def _cmd_config(config, args) -> int:
    if args.config_command == "show":
        print(config.model_dump_json(indent=2))
        return 0
    elif args.config_command == "get":
        try:
            value = get_config_value(config, args.key)
        except KeyError as e:
            print(f"Error: {e}")
            return 1
        if hasattr(value, "model_dump_json"):
            print(value.model_dump_json(indent=2))
        else:
            print(f"{args.key} = {value}")
        return 0
    else:
        print("Use: config show | config get <key>")
        return 1
