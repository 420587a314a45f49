# proof_engine/runner/git_client.py
"""Source-control collaborator - fetches a repository into a working tree."""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from proof_engine.core.errors import CloneError

logger = logging.getLogger(__name__)


class SourceFetcher(ABC):
    """Fetches a repository into a fresh directory."""

    @abstractmethod
    def clone(self, repo_url: str, destination: Path) -> Path:
        """
        Fetch repo_url into destination and return the working tree path.

        Raises:
            CloneError: If the remote is unreachable or the tree cannot be written.
        """
        raise NotImplementedError


class GitClient(SourceFetcher):
    """Shallow `git clone` through the git CLI."""

    def __init__(self, git_binary: str = "git", depth: int = 1, timeout: int = 300):
        self.git_binary = git_binary
        self.depth = depth
        self.timeout = timeout

    def clone(self, repo_url: str, destination: Path) -> Path:
        destination = Path(destination)

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CloneError(f"Failed to clone repository: {e}") from e

        if destination.exists() and any(destination.iterdir()):
            raise CloneError(
                f"Failed to clone repository: {destination} already exists and is not empty"
            )

        command = [
            self.git_binary,
            "clone",
            "--depth", str(self.depth),
            "--",
            repo_url,
            str(destination),
        ]
        logger.info(f"Cloning {repo_url} into {destination}")

        try:
            subprocess.run(
                command,
                check=True,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
            )
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or e.stdout or "").strip() or f"exit code {e.returncode}"
            raise CloneError(f"Failed to clone repository: {detail}") from e
        except subprocess.TimeoutExpired as e:
            raise CloneError(
                f"Failed to clone repository: timed out after {self.timeout}s"
            ) from e
        except OSError as e:
            raise CloneError(f"Failed to clone repository: {e}") from e

        logger.info(f"✅ Cloned {repo_url}")
        return destination
