# proof_engine/detector/detector.py
"""Project detector - classifies a working tree by its manifests."""

import json
import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Tuple

from proof_engine.core.errors import DetectionError
from proof_engine.core.models import Classification

logger = logging.getLogger(__name__)


NODE_LANGUAGE = "Node.js"
PYTHON_LANGUAGE = "Python"
UNKNOWN = "Unknown"

NODE_DEFAULT_PORT = 3000
NODE_DEFAULT_START = "node index.js"
PYTHON_DEFAULT_PORT = 5000
PYTHON_DEFAULT_START = "python app.py"
UNKNOWN_DEFAULT_PORT = 3000

# Checked in order; first declared dependency wins.
NODE_FRAMEWORKS: List[Tuple[str, str]] = [
    ("express", "Express"),
    ("next", "Next.js"),
    ("react", "React"),
    ("vue", "Vue"),
    ("@nestjs/core", "NestJS"),
]

PYTHON_FRAMEWORKS: List[Tuple[str, str]] = [
    ("flask", "Flask"),
    ("django", "Django"),
    ("fastapi", "FastAPI"),
]

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


def _list_files(repo_path: Path) -> List[str]:
    try:
        return os.listdir(repo_path)
    except OSError as e:
        raise DetectionError(f"Failed to detect project: {e}") from e


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DetectionError(f"Failed to detect project: cannot read {path.name}: {e}") from e


def _node_package_manager(files: List[str]) -> str:
    if "yarn.lock" in files:
        return "yarn"
    if "pnpm-lock.yaml" in files:
        return "pnpm"
    return "npm"


def _detect_node(repo_path: Path, files: List[str]) -> Classification:
    try:
        manifest = json.loads(_read_text(repo_path / "package.json"))
    except json.JSONDecodeError as e:
        raise DetectionError(f"Failed to detect project: invalid package.json: {e}") from e

    if not isinstance(manifest, dict):
        raise DetectionError("Failed to detect project: package.json is not an object")

    deps: Dict[str, str] = {}
    for section in ("dependencies", "devDependencies"):
        declared = manifest.get(section)
        if isinstance(declared, dict):
            deps.update(declared)

    framework = NODE_LANGUAGE
    for package, label in NODE_FRAMEWORKS:
        if package in deps:
            framework = label
            break

    scripts = manifest.get("scripts")
    start_command = None
    if isinstance(scripts, dict) and isinstance(scripts.get("start"), str):
        start_command = scripts["start"]

    return Classification(
        language=NODE_LANGUAGE,
        framework=framework,
        package_manager=_node_package_manager(files),
        start_command=start_command or NODE_DEFAULT_START,
        port=NODE_DEFAULT_PORT,
    )


def requirement_names(requirements: str) -> List[str]:
    """Lower-cased distribution names from a requirements listing."""
    names = []
    for line in requirements.splitlines():
        line = line.split("#", 1)[0].strip()
        if not line or line.startswith("-"):
            continue
        match = _REQUIREMENT_NAME.match(line)
        if match:
            names.append(match.group(1).lower())
    return names


def _detect_python(repo_path: Path, files: List[str]) -> Classification:
    framework = PYTHON_LANGUAGE

    if "requirements.txt" in files:
        names = requirement_names(_read_text(repo_path / "requirements.txt"))
        for package, label in PYTHON_FRAMEWORKS:
            if package in names:
                framework = label
                break

    return Classification(
        language=PYTHON_LANGUAGE,
        framework=framework,
        package_manager="pip",
        start_command=PYTHON_DEFAULT_START,
        port=PYTHON_DEFAULT_PORT,
    )


def detect_project(repo_path) -> Classification:
    """
    Classify a working tree.

    Node manifest first, then Python descriptors, else Unknown.

    Raises:
        DetectionError: If the tree or a manifest cannot be read.
    """
    repo_path = Path(repo_path)
    files = _list_files(repo_path)

    if "package.json" in files:
        classification = _detect_node(repo_path, files)
    elif "requirements.txt" in files or "pyproject.toml" in files:
        classification = _detect_python(repo_path, files)
    else:
        classification = Classification(
            language=UNKNOWN,
            framework=UNKNOWN,
            port=UNKNOWN_DEFAULT_PORT,
        )

    logger.debug(f"Detected {classification.label} in {repo_path}")
    return classification
