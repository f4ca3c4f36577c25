"""Tests for the cli_json JSON CLI."""

import json

import pytest

from prompt_shape.cli_json import main


@pytest.fixture
def run_cli(capsys):
    """Run main() in-process, return (exit_code, stdout, stderr)."""

    def _run(args: list[str]) -> tuple[int, str, str]:
        code = 0
        try:
            main(args)
        except SystemExit as e:
            code = e.code if isinstance(e.code, int) else 1
        captured = capsys.readouterr()
        return code, captured.out, captured.err

    return _run


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "data" / "shapes.db")


class TestParse:
    """Tests for the parse subcommand."""

    def test_parse_file(self, run_cli, sample_file):
        code, out, _ = run_cli(["parse", "--file", str(sample_file)])
        assert code == 0
        data = json.loads(out)
        assert data["success"] is True
        assert data["meta"]["sessionId"] == "sess-42"
        assert [n["id"] for n in data["nodes"]] == ["u1", "u3"]
        node = data["nodes"][0]
        assert node["textPreview"] == node["text"]
        assert node["position"] == {"x": 0.0, "y": 0.0, "z": 0.0}
        assert node["metrics"]["toolTypes"] == ["read", "exec"]
        assert node["metrics"]["latencyBucket"] == "fast"
        assert data["shape"]["nodeCount"] == 2
        assert "label" in data["shape"]
        assert data["outcomeLink"]["outcome"] == "unknown"
        assert data["errors"] == [{"line": 9, "message": data["errors"][0]["message"], "rawExcerpt": "not json"}]

    def test_parse_missing_file_reports_failure(self, run_cli, tmp_path):
        code, out, _ = run_cli(["parse", "--file", str(tmp_path / "none.jsonl")])
        assert code == 0
        data = json.loads(out)
        assert data["success"] is False
        assert data["errors"][0]["line"] == 0
        assert "rawExcerpt" not in data["errors"][0]

    def test_parse_debug_logs_to_stderr(self, run_cli, sample_file):
        code, out, err = run_cli(["parse", "--file", str(sample_file), "--debug"])
        assert code == 0
        json.loads(out)
        assert "[ingest]" in err

    def test_parse_store_then_correlate(self, run_cli, sample_file, db_path):
        code, _, _ = run_cli(["--db", db_path, "parse", "--file", str(sample_file), "--store"])
        assert code == 0

        code, out, _ = run_cli(["--db", db_path, "get_link", "--session", "sess-42"])
        assert code == 0
        assert json.loads(out)["outcome"] == "unknown"

        run_cli(["--db", db_path, "set_outcome", "--session", "sess-42", "--outcome", "shipped"])
        code, out, _ = run_cli(["--db", db_path, "correlate"])
        assert code == 0
        data = json.loads(out)
        assert data["sessions"][0]["sessionId"] == "sess-42"
        assert data["sessions"][0]["outcome"] == "shipped"
        assert data["byClassification"][0]["sessions"] == 1
        assert data["byClassification"][0]["outcomes"] == {"shipped": 1}

    def test_parse_requires_source(self, run_cli):
        code, _, _ = run_cli(["parse"])
        assert code == 2


class TestOutcomeCommands:
    """Tests for the outcome link subcommands."""

    def test_link_lifecycle(self, run_cli, db_path):
        code, out, _ = run_cli([
            "--db", db_path, "link_repo", "--session", "s1",
            "--repo", "git@example.com:team/app.git", "--branch", "main",
        ])
        assert code == 0
        assert json.loads(out)["repo"] == "git@example.com:team/app.git"

        code, out, _ = run_cli([
            "--db", db_path, "attach_commits", "--session", "s1",
            "--first", "abc", "--last", "def", "--count", "2", "--message", "one", "--message", "two",
        ])
        assert json.loads(out)["commitRange"]["messages"] == ["one", "two"]

        code, out, _ = run_cli([
            "--db", db_path, "attach_diff", "--session", "s1",
            "--files-changed", "3", "--lines-added", "40", "--lines-removed", "10", "--file-type", ".py",
        ])
        assert json.loads(out)["diff"]["filesChanged"] == 3

        code, out, _ = run_cli(["--db", db_path, "set_outcome", "--session", "s1", "--infer", "--tag", "feature"])
        data = json.loads(out)
        assert data["outcome"] == "wip"
        assert data["outcomeLabel"] == "WIP"
        assert data["tags"] == ["feature"]
        # 2 commits -> 20, 3 files -> 15, 50 lines -> 5
        assert data["outputScore"] == 40

        code, out, _ = run_cli(["--db", db_path, "list_links"])
        links = json.loads(out)
        assert [link["sessionId"] for link in links] == ["s1"]
        assert links[0]["repo"] == "git@example.com:team/app.git"

    def test_get_missing_link(self, run_cli, db_path):
        run_cli(["--db", db_path, "link_repo", "--session", "s1", "--repo", "r", "--branch", "b"])
        code, _, err = run_cli(["--db", db_path, "get_link", "--session", "other"])
        assert code == 1
        assert "Outcome link not found" in err

    def test_missing_database(self, run_cli, tmp_path):
        code, _, err = run_cli(["--db", str(tmp_path / "absent.db"), "list_links"])
        assert code == 1
        assert "Database file not found" in err

    def test_set_outcome_needs_value(self, run_cli, db_path):
        code, _, err = run_cli(["--db", db_path, "set_outcome", "--session", "s1"])
        assert code == 1
        assert "--outcome or --infer" in err

    def test_unknown_outcome_name_rejected(self, run_cli, db_path):
        code, _, err = run_cli(["--db", db_path, "set_outcome", "--session", "s1", "--outcome", "shiped"])
        assert code == 2
        assert "invalid choice" in err

    def test_negative_count_rejected(self, run_cli, db_path):
        code, _, _ = run_cli([
            "--db", db_path, "attach_commits", "--session", "s1",
            "--first", "a", "--last", "b", "--count", "-1",
        ])
        assert code == 1


class TestConfigAndLabels:

    def test_db_path_from_config(self, run_cli, tmp_path):
        db = tmp_path / "from-config.db"
        config = tmp_path / "config.yml"
        config.write_text(f"store:\n  db_path: {db}\n", encoding="utf-8")
        code, _, _ = run_cli(["--config", str(config), "link_repo", "--session", "s", "--repo", "r", "--branch", "b"])
        assert code == 0
        assert db.exists()

    def test_missing_config(self, run_cli, tmp_path):
        code, _, err = run_cli(["--config", str(tmp_path / "missing.yml"), "list_links"])
        assert code == 1
        assert "Config file not found" in err

    def test_labels(self, run_cli):
        code, out, _ = run_cli(["labels"])
        assert code == 0
        data = json.loads(out)
        assert data["intents"]["error"] == "Error / Fix"
        assert data["contentTypes"]["fileRef"] == "File"
        assert data["classifications"]["sprint"]["label"] == "Sprint"
        assert data["outcomes"]["shipped"]["label"] == "Shipped"
