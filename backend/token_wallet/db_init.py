"""
Token Wallet Database Initialization Script

Rules:
1. Environment Guard - requires WALLET_INIT_CONFIRM=YES when ENVIRONMENT=production
2. Idempotent - running multiple times must not duplicate anything
3. No destructive operations - no dropping, deleting, truncation
4. Lazy account creation - accounts are created on first use, not here
5. Dry-run mode - --dry-run prints what it would do

Usage:
    CLI one-off: python -m token_wallet.db_init
    With dry-run: python -m token_wallet.db_init --dry-run
    In production: ENVIRONMENT=production WALLET_INIT_CONFIRM=YES python -m token_wallet.db_init
"""

import os
import sys
import asyncio
import logging
from pathlib import Path
from typing import List, Tuple

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def check_environment() -> Tuple[bool, str]:
    """
    Check environment and confirm if production execution is allowed.

    Returns:
        Tuple of (allowed, message)
    """
    app_env = os.environ.get("ENVIRONMENT", "development")

    if app_env.lower() == "production":
        confirm = os.environ.get("WALLET_INIT_CONFIRM", "")
        if confirm != "YES":
            return False, (
                "PRODUCTION ENVIRONMENT DETECTED!\n"
                "To run init in production, set: WALLET_INIT_CONFIRM=YES\n"
                f"Current value: WALLET_INIT_CONFIRM='{confirm}'"
            )

    return True, f"Environment: {app_env}"


async def plan_tables(engine: AsyncEngine) -> List[str]:
    """Describe, per ledger table, whether init would create it."""
    from token_wallet.tables import Base

    async with engine.connect() as conn:
        existing = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))

    lines = []
    for table_name in Base.metadata.tables:
        if table_name in existing:
            lines.append(f"  [SKIP] Table '{table_name}' already exists")
        else:
            lines.append(f"  [CREATE] Table '{table_name}'")
    return lines


async def run_init(dry_run: bool = False, engine: AsyncEngine = None) -> bool:
    """Run the database initialization. Returns False when blocked or unreachable."""
    allowed, env_message = check_environment()
    logger.info(env_message)

    if not allowed:
        logger.error("Init blocked due to environment guard")
        return False

    import database

    target = engine or database.engine
    logger.info(f"Database: {target.url.render_as_string(hide_password=True)}")
    logger.info(f"Dry Run: {dry_run}")
    logger.info("-" * 50)

    db_ok, db_error = await database.check_db_connection(target)
    if not db_ok:
        logger.error(db_error)
        return False

    logger.info("\n=== Tables ===")
    for line in await plan_tables(target):
        logger.info(line if not dry_run else line.replace("[CREATE]", "[DRY-RUN] Would create"))

    if not dry_run:
        await database.init_db(target)

    logger.info("\n" + "=" * 50)
    logger.info("SUCCESS: Token wallet DB init completed")
    logger.info("=" * 50)
    return True


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Token Wallet Database Initialization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Development (default)
    python -m token_wallet.db_init

    # Dry run (no changes)
    python -m token_wallet.db_init --dry-run

    # Production
    ENVIRONMENT=production WALLET_INIT_CONFIRM=YES python -m token_wallet.db_init
        """
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Print what would be done without making changes'
    )

    args = parser.parse_args()

    if not asyncio.run(run_init(dry_run=args.dry_run)):
        sys.exit(1)


if __name__ == "__main__":
    main()
