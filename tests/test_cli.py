"""
Tests for CLI module - commands, output modes and exit codes.

Commands:
    - extract: Batch extraction against a real SQLite database
    - analyze: One answer text, no database
    - validate: Config validation command
    - import / export positions: Fixture loading and record export
    - main callback: Version flag and quick start

Exit Codes:
    - 0: Success
    - 1: Configuration error
    - 2: Database error
    - 3: Partial failure (some answers failed)
    - 4: Complete failure (all answers failed)
"""

import csv
import json

import pytest
import yaml
from typer.testing import CliRunner

from llm_answer_positions.cli import (
    EXIT_COMPLETE_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_DB_ERROR,
    EXIT_PARTIAL_FAILURE,
    EXIT_SUCCESS,
    app,
)
from llm_answer_positions.utils.console import output_mode

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def cli_runner():
    """Return CliRunner for testing Typer apps."""
    return CliRunner()


@pytest.fixture(autouse=True)
def reset_output_mode():
    """Commands share the global output_mode."""
    output_mode.reset()
    yield
    output_mode.reset()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "positions.db"


@pytest.fixture
def config_yaml(tmp_path, db_path):
    """Config using only the metadata provider (no network, no API keys)."""
    config_data = {
        "storage": {"sqlite_db_path": str(db_path)},
        "batch": {"limit": 100, "max_concurrency": 2},
        "enrichment": {"providers": [{"provider": "metadata"}]},
        "competitor_products": {"Adidas": ["Ultraboost", "Samba"]},
    }
    path = tmp_path / "positions.config.yaml"
    path.write_text(yaml.safe_dump(config_data))
    return path


@pytest.fixture
def network_config_yaml(tmp_path, db_path):
    config_data = {
        "storage": {"sqlite_db_path": str(db_path)},
        "enrichment": {
            "providers": [
                {
                    "provider": "cerebras",
                    "model_name": "qwen-3-235b-a22b-instruct-2507",
                    "env_api_key": "CEREBRAS_API_KEY",
                }
            ]
        },
    }
    path = tmp_path / "network.config.yaml"
    path.write_text(yaml.safe_dump(config_data))
    return path


def _write_fixture(tmp_path, answers, name="fixture.json"):
    fixture = {
        "brands": [
            {
                "id": "brand-nike",
                "name": "Nike",
                "metadata": {"products": ["Air Max", "Pegasus"]},
                "competitors": ["Adidas", "Puma"],
            }
        ],
        "answers": answers,
    }
    path = tmp_path / name
    path.write_text(json.dumps(fixture))
    return path


NIKE_ANSWER = {
    "id": 1,
    "brand_id": "brand-nike",
    "answer_text": "Nike Pegasus is reliable. Adidas Ultraboost offers more cushioning.",
    "created_at": "2025-11-02T08:00:00Z",
    "competitors": ["Adidas"],
    "topic": "running shoes",
}

ORPHAN_ANSWER = {
    "id": 2,
    "brand_id": "brand-missing",
    "answer_text": "Puma Suede is a classic.",
    "created_at": "2025-11-02T09:00:00Z",
}


def _json_output(result) -> dict:
    """Parse the indented JSON document; JSON log lines may precede it."""
    return json.loads(result.stdout[result.stdout.index("{\n") :])


def _import(cli_runner, fixture, db_path):
    result = cli_runner.invoke(app, ["import", str(fixture), "--db", str(db_path)])
    assert result.exit_code == EXIT_SUCCESS, result.output
    return result


# ============================================================================
# validate
# ============================================================================


class TestValidateCommand:
    def test_valid_config(self, cli_runner, config_yaml):
        result = cli_runner.invoke(app, ["validate", "--config", str(config_yaml)])

        assert result.exit_code == EXIT_SUCCESS
        assert "Configuration is valid" in result.stdout

    def test_json_output(self, cli_runner, config_yaml, db_path):
        result = cli_runner.invoke(
            app, ["validate", "--config", str(config_yaml), "--format", "json"]
        )

        assert result.exit_code == EXIT_SUCCESS
        data = _json_output(result)
        assert data["status"] == "success"
        assert data["database"] == str(db_path)
        assert data["providers"] == ["metadata"]
        assert data["competitor_products"] == 1

    def test_missing_file(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            app, ["validate", "--config", str(tmp_path / "nope.yaml"), "--format", "json"]
        )

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert _json_output(result)["status"] == "error"

    def test_missing_api_key(self, cli_runner, network_config_yaml, monkeypatch):
        monkeypatch.delenv("CEREBRAS_API_KEY", raising=False)

        result = cli_runner.invoke(
            app, ["validate", "--config", str(network_config_yaml), "--format", "json"]
        )

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "CEREBRAS_API_KEY" in _json_output(result)["error"]

    def test_api_key_present(self, cli_runner, network_config_yaml, monkeypatch):
        monkeypatch.setenv("CEREBRAS_API_KEY", "csk-test-key-1234")

        result = cli_runner.invoke(
            app, ["validate", "--config", str(network_config_yaml), "--format", "json"]
        )

        assert result.exit_code == EXIT_SUCCESS
        assert _json_output(result)["providers"] == ["cerebras"]

    def test_invalid_yaml(self, cli_runner, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("batch:\n  max_concurrency: 500\n")

        result = cli_runner.invoke(app, ["validate", "--config", str(path)])

        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_bad_format_is_usage_error(self, cli_runner, config_yaml):
        result = cli_runner.invoke(
            app, ["validate", "--config", str(config_yaml), "--format", "xml"]
        )

        assert result.exit_code == 2


# ============================================================================
# import
# ============================================================================


class TestImportCommand:
    def test_import_json_summary(self, cli_runner, tmp_path, db_path):
        fixture = _write_fixture(tmp_path, [NIKE_ANSWER])

        result = cli_runner.invoke(
            app, ["import", str(fixture), "--db", str(db_path), "--format", "json"]
        )

        assert result.exit_code == EXIT_SUCCESS
        assert _json_output(result)["imported"] == {
            "brands": 1,
            "competitors": 2,
            "answers": 1,
        }
        assert db_path.exists()

    def test_invalid_fixture(self, cli_runner, tmp_path, db_path):
        fixture = _write_fixture(tmp_path, [{"id": 1, "brand_id": "brand-nike"}])

        result = cli_runner.invoke(app, ["import", str(fixture), "--db", str(db_path)])

        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_missing_fixture(self, cli_runner, tmp_path, db_path):
        result = cli_runner.invoke(
            app, ["import", str(tmp_path / "missing.json"), "--db", str(db_path)]
        )

        assert result.exit_code == EXIT_CONFIG_ERROR


# ============================================================================
# extract
# ============================================================================


class TestExtractCommand:
    def test_all_answers_processed(self, cli_runner, tmp_path, db_path, config_yaml):
        _import(cli_runner, _write_fixture(tmp_path, [NIKE_ANSWER]), db_path)

        result = cli_runner.invoke(
            app, ["extract", "--config", str(config_yaml), "--format", "json"]
        )

        assert result.exit_code == EXIT_SUCCESS
        batch = _json_output(result)["batch"]
        assert batch["status"] == "success"
        assert batch["selected"] == 1
        assert batch["processed"] == 1
        # Nike + Adidas
        assert batch["records_written"] == 2

    def test_second_run_has_nothing_to_do(self, cli_runner, tmp_path, db_path, config_yaml):
        _import(cli_runner, _write_fixture(tmp_path, [NIKE_ANSWER]), db_path)
        cli_runner.invoke(app, ["extract", "--config", str(config_yaml)])

        result = cli_runner.invoke(
            app, ["extract", "--config", str(config_yaml), "--format", "json"]
        )

        assert result.exit_code == EXIT_SUCCESS
        assert _json_output(result)["batch"]["status"] == "empty"

    def test_answer_id_reprocesses(self, cli_runner, tmp_path, db_path, config_yaml):
        _import(cli_runner, _write_fixture(tmp_path, [NIKE_ANSWER]), db_path)
        cli_runner.invoke(app, ["extract", "--config", str(config_yaml)])

        result = cli_runner.invoke(
            app,
            ["extract", "--config", str(config_yaml), "--answer-id", "1", "--format", "json"],
        )

        assert result.exit_code == EXIT_SUCCESS
        assert _json_output(result)["batch"]["processed"] == 1

    def test_partial_failure(self, cli_runner, tmp_path, db_path, config_yaml):
        _import(cli_runner, _write_fixture(tmp_path, [NIKE_ANSWER, ORPHAN_ANSWER]), db_path)

        result = cli_runner.invoke(
            app, ["extract", "--config", str(config_yaml), "--format", "json"]
        )

        assert result.exit_code == EXIT_PARTIAL_FAILURE
        batch = _json_output(result)["batch"]
        assert batch["processed"] == 1
        assert batch["failed"] == 1
        assert batch["failures"][0]["answer_id"] == 2
        assert batch["failures"][0]["error_type"] == "BrandNotFoundError"

    def test_complete_failure(self, cli_runner, tmp_path, db_path, config_yaml):
        _import(cli_runner, _write_fixture(tmp_path, [ORPHAN_ANSWER]), db_path)

        result = cli_runner.invoke(app, ["extract", "--config", str(config_yaml)])

        assert result.exit_code == EXIT_COMPLETE_FAILURE

    def test_brand_filter(self, cli_runner, tmp_path, db_path, config_yaml):
        _import(cli_runner, _write_fixture(tmp_path, [NIKE_ANSWER, ORPHAN_ANSWER]), db_path)

        result = cli_runner.invoke(
            app,
            [
                "extract",
                "--config",
                str(config_yaml),
                "--brand-id",
                "brand-nike",
                "--format",
                "json",
            ],
        )

        assert result.exit_code == EXIT_SUCCESS
        assert _json_output(result)["batch"]["selected"] == 1

    def test_customer_filter(self, cli_runner, tmp_path, db_path, config_yaml):
        answers = [
            {**NIKE_ANSWER, "customer_id": "cust-1"},
            {**NIKE_ANSWER, "id": 3, "customer_id": "cust-2"},
        ]
        _import(cli_runner, _write_fixture(tmp_path, answers), db_path)

        result = cli_runner.invoke(
            app,
            [
                "extract",
                "--config",
                str(config_yaml),
                "--customer-id",
                "cust-1",
                "--format",
                "json",
            ],
        )

        assert result.exit_code == EXIT_SUCCESS
        batch = _json_output(result)["batch"]
        assert batch["selected"] == 1
        assert batch["processed"] == 1

    def test_invalid_since(self, cli_runner, config_yaml):
        result = cli_runner.invoke(
            app, ["extract", "--config", str(config_yaml), "--since", "yesterday"]
        )

        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_missing_config(self, cli_runner, tmp_path):
        result = cli_runner.invoke(app, ["extract", "--config", str(tmp_path / "nope.yaml")])

        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_database_path_is_directory(self, cli_runner, tmp_path):
        blocked = tmp_path / "blocked"
        blocked.mkdir()
        config = tmp_path / "c.yaml"
        config.write_text(yaml.safe_dump({"storage": {"sqlite_db_path": str(blocked)}}))

        result = cli_runner.invoke(app, ["extract", "--config", str(config)])

        assert result.exit_code == EXIT_DB_ERROR


# ============================================================================
# analyze
# ============================================================================


class TestAnalyzeCommand:
    def test_json_rows(self, cli_runner):
        result = cli_runner.invoke(
            app,
            [
                "analyze",
                "--brand",
                "Nike",
                "--product",
                "Air Max",
                "--competitor",
                "Adidas",
                "--text",
                "I love Nike shoes and Nike Air Max",
                "--format",
                "json",
            ],
        )

        assert result.exit_code == EXIT_SUCCESS
        data = _json_output(result)
        assert data["total_word_count"] == 8

        brand, adidas = data["positions"]
        assert brand["entity_type"] == "brand"
        assert brand["mention_positions"] == [3, 6, 7]
        assert brand["product_positions"] == [7]
        assert brand["first_position"] == 3
        assert brand["share_of_answer"] == 100.0
        assert adidas["entity_name"] == "Adidas"
        assert adidas["has_presence"] is False

    def test_competitor_product(self, cli_runner):
        result = cli_runner.invoke(
            app,
            [
                "analyze",
                "-b",
                "Nike",
                "--competitor-product",
                "Adidas=Samba",
                "-t",
                "Samba beats Nike",
                "-f",
                "json",
            ],
        )

        assert result.exit_code == EXIT_SUCCESS
        adidas = _json_output(result)["positions"][1]
        assert adidas["product_positions"] == [1]
        assert adidas["first_position"] == 1

    def test_reads_file(self, cli_runner, tmp_path):
        answer = tmp_path / "answer.txt"
        answer.write_text("Nike, Nike and Nike.", encoding="utf-8")

        result = cli_runner.invoke(
            app, ["analyze", "--brand", "Nike", "--file", str(answer), "--format", "json"]
        )

        assert result.exit_code == EXIT_SUCCESS
        assert _json_output(result)["positions"][0]["mention_count"] == 3

    def test_human_table(self, cli_runner):
        result = cli_runner.invoke(
            app, ["analyze", "--brand", "Nike", "--text", "Nike Air Max"]
        )

        assert result.exit_code == EXIT_SUCCESS
        assert "Positions for Nike" in result.stdout

    @pytest.mark.parametrize(
        "extra",
        [
            [],
            ["--text", "Nike", "--file", "answer.txt"],
        ],
    )
    def test_requires_exactly_one_source(self, cli_runner, extra):
        result = cli_runner.invoke(app, ["analyze", "--brand", "Nike", *extra])

        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_bad_competitor_product(self, cli_runner):
        result = cli_runner.invoke(
            app,
            ["analyze", "--brand", "Nike", "--competitor-product", "Adidas", "--text", "x"],
        )

        assert result.exit_code == 2


# ============================================================================
# export positions
# ============================================================================


class TestExportCommand:
    @pytest.fixture
    def extracted_db(self, cli_runner, tmp_path, db_path, config_yaml):
        _import(cli_runner, _write_fixture(tmp_path, [NIKE_ANSWER]), db_path)
        result = cli_runner.invoke(app, ["extract", "--config", str(config_yaml)])
        assert result.exit_code == EXIT_SUCCESS
        return db_path

    def test_export_csv(self, cli_runner, tmp_path, extracted_db):
        output = tmp_path / "positions.csv"

        result = cli_runner.invoke(
            app,
            ["export", "positions", "--output", str(output), "--db", str(extracted_db)],
        )

        assert result.exit_code == EXIT_SUCCESS
        with output.open(newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert {row["entity_name"] for row in rows} == {"Nike", "Adidas"}

    def test_export_json(self, cli_runner, tmp_path, extracted_db):
        output = tmp_path / "positions.json"

        result = cli_runner.invoke(
            app,
            [
                "export",
                "positions",
                "-o",
                str(output),
                "--db",
                str(extracted_db),
                "--brand-id",
                "brand-nike",
                "--format",
                "json",
            ],
        )

        assert result.exit_code == EXIT_SUCCESS
        assert _json_output(result)["exported"] == 2
        assert len(json.loads(output.read_text(encoding="utf-8"))) == 2

    def test_bad_extension(self, cli_runner, tmp_path, extracted_db):
        result = cli_runner.invoke(
            app,
            [
                "export",
                "positions",
                "--output",
                str(tmp_path / "positions.xlsx"),
                "--db",
                str(extracted_db),
            ],
        )

        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_missing_database(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            app,
            [
                "export",
                "positions",
                "--output",
                str(tmp_path / "out.csv"),
                "--db",
                str(tmp_path / "missing.db"),
            ],
        )

        assert result.exit_code == EXIT_DB_ERROR


# ============================================================================
# main callback
# ============================================================================


class TestMainCallback:
    def test_version_flag(self, cli_runner):
        result = cli_runner.invoke(app, ["--version"])

        assert result.exit_code == EXIT_SUCCESS
        assert "llm-answer-positions" in result.output
        assert "0.1.0" in result.output

    def test_no_command_shows_quick_start(self, cli_runner):
        result = cli_runner.invoke(app, [])

        assert "Quick start" in result.output

    def test_help_lists_commands(self, cli_runner):
        result = cli_runner.invoke(app, ["--help"])

        for command in ("extract", "analyze", "validate", "import", "export"):
            assert command in result.output
