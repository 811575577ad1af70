"""
GEKO import stage 'base': categories, producers, units, products, variants, documents and properties.

Usage:
    python scripts/import_base.py [path/to/geko_products_en.xml]

Defaults to GEKO_XML_PATH. Exits 1 when the stage fails; the stage
transaction is rolled back in that case.
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from alitools.services.import_runner import stage_main


if __name__ == "__main__":
    sys.exit(stage_main("base", sys.argv))
