"""
Run every GEKO import stage in order (base, stocks, prices_images), each as
its own process. Stops at the first failing stage.

Usage:
    python scripts/run_all_imports.py [path/to/geko_products_en.xml]
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from alitools.services.import_runner import run_all_stages
from alitools.utils.logger import configure_logging


def main() -> int:
    configure_logging()
    xml_path = sys.argv[1] if len(sys.argv) > 1 else None

    print("=" * 60)
    print("GEKO IMPORT")
    print("=" * 60)

    exit_code = run_all_stages(xml_path)

    print("=" * 60)
    print("ALL IMPORTS COMPLETED" if exit_code == 0 else "IMPORT FAILED")
    print("=" * 60)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
