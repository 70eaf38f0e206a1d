#!/usr/bin/env python3
"""Leave balance administration — year-end renewal and bulk initialization.

Usage:
    python scripts/renew_balances.py renew --from-year 2024 --to-year 2025
    python scripts/renew_balances.py init --year 2025 --employee <uuid> [--employee <uuid> ...]
    python scripts/renew_balances.py renew --from-year 2024 --to-year 2025 --dry-run

Exit codes:
    0 = every employee processed
    1 = one or more employees skipped (see log)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.config import settings  # noqa: E402
from backend.database import async_session_factory  # noqa: E402
from backend.leave.balance import LeaveBalanceService  # noqa: E402
from backend.leave.repository import LeaveRepository  # noqa: E402

logger = logging.getLogger("renew_balances")


# ══════════════════════════════════════════════════════════════════════
# Jobs
# ══════════════════════════════════════════════════════════════════════

async def run_renewal(
    session_factory: async_sessionmaker[AsyncSession],
    from_year: int,
    to_year: int,
    *,
    dry_run: bool = False,
) -> tuple[int, int]:
    """Returns (processed, candidates). A dry run rolls everything back."""
    async with session_factory() as session:
        candidates = len(await LeaveRepository.find_employees_with_balances(session, from_year))
        processed = await LeaveBalanceService.process_year_end_renewal(
            session, from_year, to_year,
        )
        if dry_run:
            await session.rollback()
        else:
            await session.commit()
    return processed, candidates


async def run_bulk_init(
    session_factory: async_sessionmaker[AsyncSession],
    year: int,
    employee_ids: Sequence[uuid.UUID],
    *,
    dry_run: bool = False,
) -> tuple[int, int]:
    async with session_factory() as session:
        processed = await LeaveBalanceService.bulk_initialize(session, employee_ids, year)
        if dry_run:
            await session.rollback()
        else:
            await session.commit()
    return processed, len(employee_ids)


# ══════════════════════════════════════════════════════════════════════
# Main
# ══════════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Leave balance administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s renew --from-year 2024 --to-year 2025
  %(prog)s init --year 2025 --employee 3f1c... --employee 9a2b...
        """,
    )
    parser.add_argument("--dry-run", action="store_true",
                        help="Run the job but roll back instead of committing")
    sub = parser.add_subparsers(dest="command", required=True)

    renew = sub.add_parser("renew", help="Create next-year balances for everyone")
    renew.add_argument("--from-year", type=int, required=True)
    renew.add_argument("--to-year", type=int, required=True)

    init = sub.add_parser("init", help="Initialize default balances for given employees")
    init.add_argument("--year", type=int, required=True)
    init.add_argument("--employee", dest="employees", type=uuid.UUID,
                      action="append", required=True, help="Employee UUID (repeatable)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    )

    if args.command == "renew":
        if args.to_year <= args.from_year:
            logger.error("--to-year must be after --from-year")
            return 1
        processed, total = asyncio.run(run_renewal(
            async_session_factory, args.from_year, args.to_year, dry_run=args.dry_run,
        ))
    else:
        processed, total = asyncio.run(run_bulk_init(
            async_session_factory, args.year, args.employees, dry_run=args.dry_run,
        ))

    logger.info("%s: %d of %d employee(s) processed%s",
                args.command, processed, total, " (dry run)" if args.dry_run else "")
    return 0 if processed == total else 1


if __name__ == "__main__":
    sys.exit(main())
