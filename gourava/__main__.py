import argparse
import logging

from aiohttp import web

from . import VERSION
from .api import PREFIX, create_app
from .constants import APP_NAME, SCHEMA_VERSION
from .db import GouravaStore

logger = logging.getLogger("Gourava")


def build_parser():
    parser = argparse.ArgumentParser(prog="gourava", description=f"{APP_NAME} rating journal server")
    parser.add_argument("--db", default=None, help="SQLite database file (default: <data dir>/gourava.db)")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8189)
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def _log_banner(store):
    banner = f" {APP_NAME} Initialization "
    logger.info("=" * 40 + banner + "=" * 40)
    logger.info(f"Version: {VERSION}")
    logger.info(f"Schema version: {SCHEMA_VERSION}")
    logger.info(f"Database: {store.db_path}")
    logger.info(f"Routes under: {PREFIX}")
    logger.info("=" * (80 + len(banner)))


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    store = GouravaStore(args.db)
    _log_banner(store)
    web.run_app(create_app(store), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
