"""
Stage orchestration tests. Ordering is checked with a fake runner; the stage
entry point and scripts run for real against a throwaway SQLite database.
"""
import asyncio
import os
import subprocess
import sys
from functools import partial
from pathlib import Path
from subprocess import CompletedProcess

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

from alitools.models import SyncHealth
from alitools.services.import_runner import (
    SCRIPTS_DIR, run_all_stages, stage_command, stage_main, STAGE_SCRIPTS,
)


class FakeRunner:
    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.commands = []

    def __call__(self, command, check=False):
        self.commands.append(command)
        script = Path(command[1]).name
        code = 1 if script == self.fail_on else 0
        return CompletedProcess(command, code)


def test_stage_command(tmp_path):
    command = stage_command("stocks", "feed.xml", scripts_dir=tmp_path)
    assert command == [sys.executable, str(tmp_path / "import_stocks.py"), "feed.xml"]


def test_stage_command_without_path(tmp_path):
    assert len(stage_command("base", scripts_dir=tmp_path)) == 2


def test_runs_all_stages_in_order():
    runner = FakeRunner()

    assert run_all_stages("feed.xml", runner=runner) == 0
    assert [Path(c[1]).name for c in runner.commands] == [
        STAGE_SCRIPTS["base"], STAGE_SCRIPTS["stocks"], STAGE_SCRIPTS["prices_images"],
    ]


def test_stops_at_first_failure():
    runner = FakeRunner(fail_on="import_stocks.py")

    assert run_all_stages("feed.xml", runner=runner) == 1
    assert [Path(c[1]).name for c in runner.commands] == ["import_base.py", "import_stocks.py"]


def test_stage_scripts_exist():
    scripts_dir = Path(__file__).resolve().parents[2] / "scripts"
    for script in STAGE_SCRIPTS.values():
        assert (scripts_dir / script).is_file()


# ===================== STAGE ENTRY POINT =====================


def sqlite_url(db_path):
    return f"sqlite+aiosqlite:///{db_path}"


def recorded_runs(db_path):
    async def query():
        engine = create_async_engine(sqlite_url(db_path))
        try:
            async with engine.connect() as conn:
                result = await conn.execute(
                    select(SyncHealth.sync_type, SyncHealth.status).order_by(SyncHealth.id)
                )
                return [tuple(row) for row in result]
        finally:
            await engine.dispose()

    return asyncio.run(query())


def broken_feed(tmp_path):
    path = tmp_path / "broken.xml"
    path.write_text("<geko><products>")
    return path


def script_env(db_path):
    env = {
        name: value for name, value in os.environ.items()
        if name not in ("NEON_DB_URL", "POSTGRES_URL", "DATABASE_URL", "NODE_ENV")
    }
    env["DATABASE_URL"] = f"sqlite:///{db_path}"
    return env


def test_stage_main_missing_feed_exits_1(tmp_path):
    db_path = tmp_path / "cli.db"
    engine = create_async_engine(sqlite_url(db_path))

    assert stage_main("base", ["import_base.py", str(tmp_path / "missing.xml")], engine=engine) == 1
    assert recorded_runs(db_path) == [("stage:base", "failed")]


def test_stage_main_imports_feed(tmp_path, feed_path):
    db_path = tmp_path / "cli.db"
    engine = create_async_engine(sqlite_url(db_path))

    assert stage_main("base", ["import_base.py", str(feed_path)], engine=engine) == 0
    [(sync_type, status)] = recorded_runs(db_path)
    assert sync_type == "stage:base"
    assert status != "failed"


def test_stage_script_exits_1_on_broken_feed(tmp_path):
    db_path = tmp_path / "script.db"

    completed = subprocess.run(
        [sys.executable, str(SCRIPTS_DIR / "import_base.py"), str(broken_feed(tmp_path))],
        env=script_env(db_path), cwd=tmp_path, capture_output=True, check=False,
    )

    assert completed.returncode == 1
    assert recorded_runs(db_path) == [("stage:base", "failed")]


def test_run_all_stages_aborts_after_failed_script(tmp_path):
    db_path = tmp_path / "script.db"
    runner = partial(subprocess.run, env=script_env(db_path), cwd=tmp_path, capture_output=True)

    assert run_all_stages(broken_feed(tmp_path), runner=runner) == 1
    # stocks and prices_images never ran
    assert recorded_runs(db_path) == [("stage:base", "failed")]
