"""
Tests for the queryartifacts command line interface.
"""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from queryartifacts import __version__
from queryartifacts.cli.main import app

runner = CliRunner()

SCENARIO_SQL = (
    "SELECT * FROM emp WHERE dept_id = :1 AND hire_date > :2 ORDER BY last_name"
)
CATALOG_YAML = """\
connection_id: hr-snapshot
default_schema: HR
tables: [HR.EMP, HR.DEPT]
indexes:
  - index_name: IDX_EMP_DEPT
    owner: HR
    table: EMP
    columns: [DEPT_ID]
statistics:
  - {owner: HR, table: EMP, column: DEPT_ID, distinct_cardinality: 10}
"""


@pytest.fixture
def catalog(tmp_path):
    path = tmp_path / "hr.yaml"
    path.write_text(CATALOG_YAML)
    return path


@pytest.fixture
def sql_file(tmp_path):
    def _write(sql: str = SCENARIO_SQL, name: str = "query.sql"):
        path = tmp_path / name
        path.write_text(sql)
        return path

    return _write


class TestAnalyzeCommand:
    """queryartifacts analyze"""

    def test_json_output(self, catalog, sql_file) -> None:
        result = runner.invoke(
            app, ["analyze", str(sql_file()), "--catalog", str(catalog), "--json"]
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["connectionId"] == "hr-snapshot"
        assert data["recommendations"][0]["kind"] == "EXTEND_INDEX"
        assert data["recommendations"][0]["indexName"] == "IDX_EMP_DEPT"

    def test_text_output(self, catalog, sql_file) -> None:
        result = runner.invoke(app, ["analyze", str(sql_file()), "-c", str(catalog)])
        assert result.exit_code == 0
        assert "EXTEND_INDEX" in result.stdout
        assert "IDX_EMP_DEPT" in result.stdout
        assert "DROP INDEX HR.IDX_EMP_DEPT;" in result.stdout

    def test_markdown_output(self, catalog, sql_file) -> None:
        result = runner.invoke(
            app,
            ["analyze", str(sql_file()), "-c", str(catalog), "--format", "markdown"],
        )
        assert result.exit_code == 0
        assert result.stdout.startswith("# Query Artifact Analysis")

    def test_owner_and_hints(self, catalog, sql_file) -> None:
        path = sql_file(
            "SELECT * FROM emp e JOIN dept d ON e.dept_id = d.dept_id "
            "WHERE d.location_id = 1700"
        )
        result = runner.invoke(
            app,
            ["analyze", str(path), "-c", str(catalog), "-o", "hr", "--hints", "-j"],
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["hints"] == "/*+ LEADING(D E) USE_NL(E) */"

    def test_no_stats(self, catalog, sql_file) -> None:
        result = runner.invoke(
            app, ["analyze", str(sql_file()), "-c", str(catalog), "--no-stats", "-j"]
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["statistics"] == []
        assert any("neutral default" in w for w in data["warnings"])

    def test_parse_error_exits_1(self, catalog, sql_file) -> None:
        path = sql_file("DELETE FROM emp")
        result = runner.invoke(app, ["analyze", str(path), "-c", str(catalog)])
        assert result.exit_code == 1

    def test_unknown_table_exits_1(self, catalog, sql_file) -> None:
        path = sql_file("SELECT * FROM locations WHERE city = 'X'")
        result = runner.invoke(app, ["analyze", str(path), "-c", str(catalog)])
        assert result.exit_code == 1

    def test_missing_catalog_exits_2(self, tmp_path, sql_file) -> None:
        result = runner.invoke(
            app, ["analyze", str(sql_file()), "-c", str(tmp_path / "missing.yaml")]
        )
        assert result.exit_code == 2

    def test_missing_sql_file(self, catalog, tmp_path) -> None:
        result = runner.invoke(
            app, ["analyze", str(tmp_path / "nope.sql"), "-c", str(catalog)]
        )
        assert result.exit_code != 0


class TestParseCommand:
    """queryartifacts parse"""

    def test_json(self, sql_file) -> None:
        result = runner.invoke(app, ["parse", str(sql_file()), "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["tables"][0]["name"] == "EMP"
        assert len(data["predicates"]) == 2

    def test_tables_view(self, sql_file) -> None:
        result = runner.invoke(app, ["parse", str(sql_file())])
        assert result.exit_code == 0
        assert "DEPT_ID" in result.stdout
        assert "ORDER BY EMP.LAST_NAME" in result.stdout

    def test_parse_error(self, sql_file) -> None:
        result = runner.invoke(app, ["parse", str(sql_file("SELECT FROM"))])
        assert result.exit_code == 1


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"queryartifacts version {__version__}" in result.stdout
