"""
Command line runners for the import stages.

`run_all_stages` spawns each stage script as a child process, one after
another, and stops at the first stage that exits non-zero. `stage_main` is
the body of those stage scripts.
"""
import asyncio
import logging
import subprocess
import sys
import time
from pathlib import Path
from typing import Callable, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from alitools.config import get_settings
from alitools.services.catalog_importer import STAGES, run_stage
from alitools.utils.exceptions import FeedError, ImportStageError
from alitools.utils.logger import configure_logging

settings = get_settings()
logger = logging.getLogger(__name__)

SCRIPTS_DIR = Path(__file__).resolve().parents[2] / "scripts"

STAGE_SCRIPTS = {
    "base": "import_base.py",
    "stocks": "import_stocks.py",
    "prices_images": "import_prices_images.py",
}


def stage_command(stage: str, xml_path: Union[str, Path, None] = None,
                  scripts_dir: Path = SCRIPTS_DIR) -> list[str]:
    command = [sys.executable, str(scripts_dir / STAGE_SCRIPTS[stage])]
    if xml_path:
        command.append(str(xml_path))
    return command


def run_all_stages(
    xml_path: Union[str, Path, None] = None,
    runner: Callable = subprocess.run,
    scripts_dir: Path = SCRIPTS_DIR,
) -> int:
    """Run every stage in order. Returns 0 on success, 1 on the first failure."""
    started = time.monotonic()
    for stage in STAGES:
        command = stage_command(stage, xml_path, scripts_dir)
        logger.info(f"Running {stage} import: {' '.join(command)}")
        stage_started = time.monotonic()

        completed = runner(command, check=False)
        if completed.returncode != 0:
            logger.error(f"Stage {stage} failed with exit code {completed.returncode}, aborting remaining stages")
            return 1

        logger.info(f"Stage {stage} completed in {time.monotonic() - stage_started:.1f}s")

    logger.info(f"All imports completed in {time.monotonic() - started:.1f}s")
    return 0


async def _run_stage_with_schema(stage: str, xml_path: str, engine: Optional[AsyncEngine] = None) -> None:
    from alitools.database import Base
    from alitools import models  # noqa: F401 - register all tables

    if engine is None:
        from alitools.database import engine
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        await run_stage(stage, xml_path, session_factory=session_factory)
    finally:
        await engine.dispose()


def stage_main(stage: str, argv: list[str], engine: Optional[AsyncEngine] = None) -> int:
    """Entry point of the per-stage scripts: `<script> [xml_path]`."""
    configure_logging()
    xml_path = argv[1] if len(argv) > 1 else settings.GEKO_XML_PATH
    try:
        asyncio.run(_run_stage_with_schema(stage, xml_path, engine))
    except (FeedError, ImportStageError, SQLAlchemyError) as e:
        logger.error(f"{stage} import failed: {e}")
        return 1
    return 0
