"""
Row counts per catalog table.

Usage:
    python scripts/check_counts.py
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from alitools.database import AsyncSessionLocal, engine
from alitools.services.integrity_checker import count_rows


async def main():
    async with AsyncSessionLocal() as session:
        counts = await count_rows(session)
    await engine.dispose()

    print("=" * 60)
    print("TABLE ROW COUNTS")
    print("=" * 60)
    for table, count in counts.items():
        print(f"   {table:<24} {count:>10,}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
