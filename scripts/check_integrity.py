"""
Integrity check: orphaned foreign keys and catalog completeness after import.

Usage:
    python scripts/check_integrity.py

Exits 1 when orphaned rows are found.
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from alitools.database import AsyncSessionLocal, engine
from alitools.services.integrity_checker import check_integrity


async def main() -> int:
    print("=" * 60)
    print("DATABASE INTEGRITY CHECK")
    print("=" * 60)

    async with AsyncSessionLocal() as session:
        report = await check_integrity(session)
    await engine.dispose()

    print("\nOrphaned references:")
    for name, count in report.orphans.items():
        marker = "OK" if count == 0 else "ERROR"
        print(f"   {name:<34} {count:>8}  {marker}")

    print("\nCatalog completeness:")
    for name, count in report.catalog.items():
        print(f"   {name:<40} {count:>8}")

    print("\n" + "=" * 60)
    if report.is_clean:
        print("NO ORPHANED ROWS FOUND")
    else:
        print(f"FOUND {report.orphan_total} ORPHANED ROWS")
    print("=" * 60)
    return 0 if report.is_clean else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
