"""
Run the checkout API.

    python -m storefront            # serve on 127.0.0.1:8000
    python -m storefront --seed     # load the demo catalog first
"""

import argparse
import asyncio

import uvicorn

from storefront.api import create_app
from storefront.config import Settings, configure_logging, logging_config
from storefront.seed import seed_catalog, seed_discounts
from storefront.store import create_database


async def _seed(settings: Settings) -> None:
    session_factory, engine = await create_database(settings.database_url)
    try:
        await seed_catalog(session_factory)
        await seed_discounts(session_factory)
    finally:
        await engine.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storefront")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--seed", action="store_true", help="load demo products and WELCOME10")
    return parser


def main() -> None:
    args = build_parser().parse_args()

    settings = Settings.from_env()
    configure_logging(settings.log_level)

    if args.seed:
        asyncio.run(_seed(settings))

    uvicorn.run(
        create_app(settings=settings),
        host=args.host,
        port=args.port,
        log_config=logging_config(settings.log_level),
    )


if __name__ == "__main__":
    main()
