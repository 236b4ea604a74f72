"""
Tests for the plancheck command line.
"""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from plancheck import __version__
from plancheck.cli import app


SPILLING_SORT = """\
Sort  (cost=1000.00..1100.00 rows=40000 width=64) (actual time=500.000..650.000 rows=40000 loops=1)
  Sort Key: created_at
  Sort Method: external merge  Disk: 204800kB
  ->  Seq Scan on events  (cost=0.00..500.00 rows=40000 width=64) (actual time=0.010..100.000 rows=40000 loops=1)
Planning Time: 0.100 ms
Execution Time: 700.000 ms
"""

CLEAN_PLAN = """\
Seq Scan on users  (cost=0.00..8.50 rows=440 width=36) (actual time=0.011..0.012 rows=1 loops=1)
  Filter: (id = 1)
  Rows Removed by Filter: 0
Planning Time: 0.051 ms
Execution Time: 0.032 ms
"""

runner = CliRunner()


@pytest.fixture
def plan_file(tmp_path: Path) -> Path:
    path = tmp_path / "plan.txt"
    path.write_text(SPILLING_SORT)
    return path


class TestAnalyzeCommand:
    """Tests for `plancheck analyze`."""

    def test_findings_listed(self, plan_file: Path) -> None:
        result = runner.invoke(app, ["analyze", str(plan_file)])

        assert result.exit_code == 0
        assert "disk_spill" in result.output
        assert "Found 2 issue(s)" in result.output

    def test_clean_plan(self, tmp_path: Path) -> None:
        path = tmp_path / "clean.txt"
        path.write_text(CLEAN_PLAN)

        result = runner.invoke(app, ["analyze", str(path)])

        assert result.exit_code == 0
        assert "No performance issues found" in result.output

    def test_json_output(self, plan_file: Path) -> None:
        result = runner.invoke(app, ["analyze", "--json", str(plan_file)])

        assert result.exit_code == 0
        assert '"analysisTimeMs"' in result.output
        assert '"disk_spill"' in result.output

    def test_stdin(self) -> None:
        result = runner.invoke(app, ["analyze", "-"], input=SPILLING_SORT)

        assert result.exit_code == 0
        assert "disk_spill" in result.output

    def test_timeout_option(self, plan_file: Path) -> None:
        result = runner.invoke(app, ["analyze", "--timeout-ms", "500", str(plan_file)])

        assert result.exit_code == 0

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["analyze", str(tmp_path / "absent.txt")])

        assert result.exit_code == 1

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.txt"
        path.write_text("   \n")

        result = runner.invoke(app, ["analyze", str(path)])

        assert result.exit_code == 1

    def test_unparseable_file(self, tmp_path: Path) -> None:
        path = tmp_path / "junk.txt"
        path.write_text("definitely not a query plan")

        result = runner.invoke(app, ["analyze", str(path)])

        assert result.exit_code == 1


class TestOtherCommands:
    def test_detectors(self) -> None:
        result = runner.invoke(app, ["detectors"])

        assert result.exit_code == 0
        assert "disk_spill" in result.output
        assert "missing_index" in result.output

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output
