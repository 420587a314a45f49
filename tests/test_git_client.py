"""Test the git clone wrapper."""

import os
import subprocess

import pytest

from proof_engine.core.errors import CloneError
from proof_engine.runner.git_client import GitClient


class TestGitClient:
    def test_shallow_clone_command(self, tmp_path, monkeypatch):
        """Test git is invoked with --depth 1 into the destination."""
        calls = []

        def fake_run(command, **kwargs):
            calls.append((command, kwargs))
            return subprocess.CompletedProcess(command, 0, "", "")

        monkeypatch.setattr(subprocess, "run", fake_run)
        destination = tmp_path / "workspaces" / "dep-1"

        result = GitClient().clone("https://github.com/acme/app", destination)

        assert result == destination
        command, kwargs = calls[0]
        assert command == [
            "git", "clone", "--depth", "1", "--",
            "https://github.com/acme/app", str(destination),
        ]
        assert kwargs["check"] is True
        assert kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"
        assert kwargs["env"].get("PATH") == os.environ.get("PATH")

    def test_git_failure(self, tmp_path, monkeypatch):
        """Test a failing clone raises CloneError with git's stderr."""
        def fake_run(command, **kwargs):
            raise subprocess.CalledProcessError(
                128, command, stderr="fatal: repository not found\n"
            )

        monkeypatch.setattr(subprocess, "run", fake_run)

        with pytest.raises(CloneError, match="repository not found"):
            GitClient().clone("https://github.com/acme/missing", tmp_path / "dep-1")

    def test_timeout(self, tmp_path, monkeypatch):
        """Test a hung clone raises CloneError."""
        def fake_run(command, **kwargs):
            raise subprocess.TimeoutExpired(command, kwargs["timeout"])

        monkeypatch.setattr(subprocess, "run", fake_run)

        with pytest.raises(CloneError, match="timed out"):
            GitClient(timeout=5).clone("https://github.com/acme/app", tmp_path / "dep-1")

    def test_non_empty_destination(self, tmp_path):
        """Test an existing non-empty tree is refused."""
        destination = tmp_path / "dep-1"
        destination.mkdir()
        (destination / "leftover.txt").write_text("x")

        with pytest.raises(CloneError):
            GitClient().clone("https://github.com/acme/app", destination)
