import argparse
import asyncio

from storefront import seeds
from storefront.db.session import SessionLocal, engine
from storefront.models import Base


async def create_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


async def seed_demo() -> None:
    async with SessionLocal() as session:
        await seeds.seed(session)
    await engine.dispose()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Storefront checkout utilities")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("create-schema", help="Create all tables directly (local/dev; use Alembic elsewhere)")
    subparsers.add_parser("seed-demo", help="Seed demo categories, products, coupons and users")
    return parser


def _run_cli_command(args: argparse.Namespace) -> bool:
    if args.command == "create-schema":
        asyncio.run(create_schema())
        return True

    if args.command == "seed-demo":
        asyncio.run(seed_demo())
        return True

    return False


def main():
    parser = _build_parser()
    args = parser.parse_args()
    if not _run_cli_command(args):
        parser.print_help()


if __name__ == "__main__":
    main()
