"""Tests for the CLI entry point."""

from __future__ import annotations

import io
import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from release_marker.cli import main
from release_marker.config import MarkerConfig
from release_marker.context.gitlab import MockGitLabClient
from release_marker.errors import MultipleTrackingIssuesFound

PARENT_CONFIG = MarkerConfig(
    gitlab_api_url="https://gitlab.example.com/api/v4",
    parent_id_or_path="group/parent",
)


@pytest.fixture(autouse=True)
def no_logging_setup():
    # Keep structlog in capture mode for the whole test.
    with patch("release_marker.cli.setup_logging"):
        yield


@pytest.fixture
def releases_file(tmp_path: Path) -> Path:
    path = tmp_path / "releases.json"
    path.write_text(json.dumps([
        {"pluginName": "release-marker", "version": "1.0.0", "notes": "## 1.0.0"},
        {"pluginName": "@semantic-release/npm", "version": "1.0.0", "notes": ""},
    ]))
    return path


class TestCLI:
    def test_marks_releases(self, releases_file: Path, capsys) -> None:
        gitlab = MockGitLabClient()
        with patch("release_marker.cli.load_marker_config", return_value=PARENT_CONFIG), \
                patch("release_marker.cli.GitLabClient", return_value=gitlab):
            main(["--releases", str(releases_file), "--module-name", "core"])

        results = json.loads(capsys.readouterr().out)
        assert results == [
            {
                "module_name": "core",
                "version": "1.0.0",
                "issue_iid": 1,
                "note_posted": True,
                "error": None,
            }
        ]
        project_url = "https://gitlab.example.com/api/v4/projects/group%2Fparent"
        assert gitlab.issues[project_url][0].description == "core: 1.0.0\n"

    def test_reads_stdin(self, capsys, monkeypatch) -> None:
        monkeypatch.setattr("sys.stdin", io.StringIO(
            '[{"pluginName": "release-marker", "version": "2.0.0", "notes": "## 2.0.0"}]'
        ))
        run = AsyncMock(return_value=[])
        with patch("release_marker.cli.load_marker_config", return_value=PARENT_CONFIG), \
                patch("release_marker.cli.run", run):
            main(["--releases", "-", "--module-name", "core"])

        config, releases, module_name = run.call_args.args
        assert releases[0].version == "2.0.0"
        assert module_name == "core"
        assert json.loads(capsys.readouterr().out) == []

    def test_module_name_from_pom(self, releases_file: Path) -> None:
        run = AsyncMock(return_value=[])
        with patch("release_marker.cli.load_marker_config", return_value=PARENT_CONFIG), \
                patch("release_marker.cli.resolve_module_name", return_value="from-pom"), \
                patch("release_marker.cli.run", run):
            main(["--releases", str(releases_file)])

        assert run.call_args.args[2] == "from-pom"

    def test_disabled_without_parent(self, releases_file: Path, capsys) -> None:
        run = AsyncMock()
        with patch("release_marker.cli.load_marker_config", return_value=MarkerConfig()), \
                patch("release_marker.cli.run", run):
            main(["--releases", str(releases_file), "--module-name", "core"])

        run.assert_not_called()
        assert json.loads(capsys.readouterr().out) == []

    def test_marking_error_exits_1(self, releases_file: Path, capsys) -> None:
        error = MultipleTrackingIssuesFound(2, "https://gitlab.example.com/api/v4/projects/1")
        with patch("release_marker.cli.load_marker_config", return_value=PARENT_CONFIG), \
                patch("release_marker.cli.run", AsyncMock(side_effect=error)):
            with pytest.raises(SystemExit) as exc_info:
                main(["--releases", str(releases_file), "--module-name", "core"])

        assert exc_info.value.code == 1
        assert "2 open submodule release issues" in capsys.readouterr().err

    def test_bad_releases_file_exits_2(self, tmp_path: Path, capsys) -> None:
        path = tmp_path / "releases.json"
        path.write_text('[{"pluginName": "release-marker"}]')
        with patch("release_marker.cli.load_marker_config", return_value=PARENT_CONFIG):
            with pytest.raises(SystemExit) as exc_info:
                main(["--releases", str(path)])

        assert exc_info.value.code == 2
        assert "release-marker:" in capsys.readouterr().err

    def test_releases_required(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2
