"""Tests for the command-line interface."""

import json

import pytest
from typer.testing import CliRunner

from aspect_lens import __version__
from aspect_lens.cli import app
from aspect_lens.plugins import reset_plugins

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Run each command from an empty directory with fresh plugins."""
    monkeypatch.chdir(tmp_path)
    reset_plugins()
    yield
    reset_plugins()


@pytest.fixture
def store_file(tmp_path):
    return tmp_path / "fingerprints.jsonl"


@pytest.fixture
def analyzed(tmp_path, store_file):
    """A small Python repository analyzed into workspace w1."""
    repo = tmp_path / "shop"
    repo.mkdir()
    (repo / "app.py").write_text("print('hi')\n")
    (repo / "requirements.txt").write_text("flask==2.3.0\n")
    result = runner.invoke(app, ["analyze", str(repo), "--workspace", "w1", "--owner", "acme", "--store", str(store_file)])
    assert result.exit_code == 0, result.stdout
    return store_file


def invoke_json(*args):
    result = runner.invoke(app, [*args, "--json"])
    assert result.exit_code == 0, result.stdout
    return json.loads(result.stdout)


class TestCli:
    """Tests for CLI commands."""

    def test_version(self):
        """--version prints the version."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_analyze_persists(self, analyzed):
        """Analyze writes the repository to the store file."""
        lines = analyzed.read_text().splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["workspace_id"] == "w1"
        assert record["id"]["owner"] == "acme"
        assert {fp["type"] for fp in record["fingerprints"]} >= {"language", "dependency", "framework"}

    def test_analyze_missing_path(self, tmp_path, store_file):
        """A missing repository path fails."""
        result = runner.invoke(app, ["analyze", str(tmp_path / "absent"), "--store", str(store_file)])
        assert result.exit_code == 1

    def test_tags(self, analyzed):
        """Tags and scores are reported per repository."""
        [repo] = invoke_json("tags", "--workspace", "w1", "--store", str(analyzed))
        assert repo["id"]["repo"] == "shop"
        names = {tag["name"] for tag in repo["tags"]}
        assert {"python", "no-ci"} <= names
        assert repo["weighted_score"]["weighted_scores"]["ci-configured"]["score"] == 0.0

    def test_tags_other_workspace_is_empty(self, analyzed):
        """Repositories from other workspaces are not reported."""
        assert invoke_json("tags", "--workspace", "w2", "--store", str(analyzed)) == []

    def test_categories(self, analyzed):
        """Category reports follow aspect registration order."""
        reports = invoke_json("categories", "--workspace", "w1", "--store", str(analyzed))
        assert [r["category"] for r in reports] == ["Stack", "Dependencies"]
        language = reports[0]["aspects"][0]
        assert language["type"] == "language"
        assert language["url"] == "/api/v1/w1/fingerprint/language/*"

    def test_tree(self, analyzed):
        """The tree groups repositories under fingerprint values."""
        planted = invoke_json(
            "tree", "dependency", "--name", "pypi:flask", "--by-name", "--workspace", "w1", "--store", str(analyzed)
        )
        assert planted["tree"]["name"] == "pypi:flask"
        [value] = planted["tree"]["children"]
        assert value["name"] == "==2.3.0"
        assert [leaf["name"] for leaf in value["children"]] == ["shop"]
        assert len(planted["circles"]) == 3

    def test_tree_rich_output(self, analyzed):
        """Without --json the tree is rendered."""
        result = runner.invoke(app, ["tree", "language", "--store", str(analyzed)])
        assert result.exit_code == 0
        assert "acme/shop" in result.stdout

    def test_overview(self, analyzed):
        """The overview splits aspects into found and not found."""
        result = invoke_json("overview", "--workspace", "w1", "--store", str(analyzed))
        assert result["projects_analyzed"] == 1
        assert "language" in [a["name"] for a in result["important_aspects"]]
        assert "ci" in [a["name"] for a in result["unfound_aspects"]]

    def test_score_workspace(self, analyzed):
        """Workspace scorers report their contributions."""
        result = invoke_json("score-workspace", "--workspace", "w1", "--store", str(analyzed))
        assert result["weighted_scores"]["version-consistency"]["score"] == 100.0

    def test_corrupted_store(self, store_file):
        """A corrupted store exits with an error."""
        store_file.write_text("{not json}\n")
        result = runner.invoke(app, ["tags", "--store", str(store_file)])
        assert result.exit_code == 1
        assert "Error" in result.stdout

    def test_invalid_config(self, tmp_path):
        """An invalid config file exits with an error."""
        config = tmp_path / "bad.toml"
        config.write_text("[report\n")
        result = runner.invoke(app, ["--config", str(config), "overview"])
        assert result.exit_code == 1


class TestConfigCommand:
    """Tests for the config command."""

    def test_init(self, tmp_path):
        """--init writes a default config file."""
        path = tmp_path / "aspect-lens.toml"
        result = runner.invoke(app, ["config", "--init", "--path", str(path)])
        assert result.exit_code == 0
        assert "[report]" in path.read_text()

    def test_show(self, tmp_path):
        """--show prints the effective config as JSON."""
        (tmp_path / "aspect-lens.toml").write_text('[report]\nurl_prefix = "/x"\n')
        result = runner.invoke(app, ["config", "--show"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["report"]["url_prefix"] == "/x"
