"""
Command line entry point.

Usage:
    python -m tally_sync [--config config.json] [--mode full|incremental]
                         [--tables mst_ledger trn_voucher] [--interval SECONDS]
                         [--test-connection] [-v]
"""
import argparse
import sys
import time
from dataclasses import replace
from loguru import logger

from .config import load_config
from .exceptions import ConfigurationError, TallySyncError
from .log import configure_logging
from .schema import load_table_schemas
from .sync import TallySync


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m tally_sync",
        description="Tally Sync - Sync Tally data of many companies to a SQL database",
    )
    parser.add_argument(
        "--config",
        help="Path to the JSON config file (default: $TALLY_SYNC_CONFIG or config.json)",
    )
    parser.add_argument(
        "--mode",
        choices=["full", "incremental"],
        help="Override the configured sync mode",
    )
    parser.add_argument(
        "--tables",
        nargs="*",
        help="Sync only these tables",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=0,
        help="Repeat the sync every N seconds (default: run once)",
    )
    parser.add_argument(
        "--test-connection",
        action="store_true",
        help="Test every Tally endpoint and exit",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


def print_results(results: dict):
    print("\n=== Sync Results ===")
    for key, result in results.items():
        print(f"{key}: {result['status']}")
        for table, count in result["tables"].items():
            print(f"  {table}: {count}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except TallySyncError as e:
        configure_logging("INFO")
        logger.error(str(e))
        return 1

    configure_logging("DEBUG" if args.verbose else config.log_level, config.log_file)
    if args.mode:
        config = replace(config, sync_mode=args.mode)

    try:
        schemas = load_table_schemas(config.tables_file).select(args.tables)
        sync = TallySync(config, schemas=schemas)

        if args.test_connection:
            results = sync.test_connection()
            for key, result in results.items():
                print(f"{key}: {result}")
            return 0 if all(r["status"] == "connected" for r in results.values()) else 1

        if args.interval <= 0:
            results = sync.run() or {}
            print_results(results)
            return 0 if all(r["status"] != "failed" for r in results.values()) else 1

        while True:
            try:
                print_results(sync.run() or {})
            except ConfigurationError:
                raise
            except TallySyncError as e:
                logger.error(f"Sync pass failed: {e}")
            except Exception as e:
                logger.exception(f"Sync pass failed: {e}")
            logger.info(f"Next sync in {args.interval} seconds")
            time.sleep(args.interval)

    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except TallySyncError as e:
        logger.error(f"Sync failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Sync failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
