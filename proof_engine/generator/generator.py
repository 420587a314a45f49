# proof_engine/generator/generator.py
"""Artifact generator - renders a Dockerfile and a CI workflow from a classification."""

import json
from typing import Dict

from proof_engine.core.models import Classification
from proof_engine.detector.detector import (
    NODE_DEFAULT_PORT,
    NODE_DEFAULT_START,
    NODE_LANGUAGE,
    PYTHON_DEFAULT_PORT,
    PYTHON_DEFAULT_START,
    PYTHON_LANGUAGE,
    UNKNOWN_DEFAULT_PORT,
)
from proof_engine.generator.templates import (
    CI_PIPELINE,
    NODE_DOCKERFILE,
    NODE_SETUP_STEPS,
    PYTHON_DOCKERFILE,
    PYTHON_SETUP_STEPS,
    UNKNOWN_DOCKERFILE,
)

NODE_VERSION = "18"
PYTHON_VERSION = "3.11"

NODE_BASE_IMAGE = f"node:{NODE_VERSION}-alpine"
PYTHON_BASE_IMAGE = f"python:{PYTHON_VERSION}-slim"
UNKNOWN_BASE_IMAGE = "alpine:3.19"

CI_IMAGE_NAME = "app"

DOCKERFILE_PATH = "Dockerfile"
CI_PIPELINE_PATH = ".github/workflows/deploy.yml"

# package manager -> (files copied before install, install command)
NODE_INSTALL = {
    "npm": ("package*.json", "npm install"),
    "yarn": ("package.json yarn.lock", "yarn install --frozen-lockfile"),
    "pnpm": (
        "package.json pnpm-lock.yaml",
        "corepack enable && pnpm install --frozen-lockfile",
    ),
}

PYTHON_INSTALL = (
    "if [ -f requirements.txt ]; then pip install --no-cache-dir -r requirements.txt; "
    "elif [ -f pyproject.toml ]; then pip install --no-cache-dir .; fi"
)

UNKNOWN_START = "echo 'No start command detected' && tail -f /dev/null"


def render(template: str, variables: Dict[str, object]) -> str:
    """Replace {{name}} placeholders."""
    for key, value in variables.items():
        template = template.replace(f"{{{{{key}}}}}", str(value))
    return template


def _exec_form(command: str) -> str:
    return json.dumps(["sh", "-c", command])


def _port(classification: Classification, default: int) -> int:
    return classification.port or default


def generate_dockerfile(classification: Classification) -> str:
    """
    Render a Dockerfile for the classification.

    Same classification, same bytes. Unknown projects get a best-effort
    image that still builds.
    """
    if classification.language == NODE_LANGUAGE:
        manifest_files, install_command = NODE_INSTALL.get(
            classification.package_manager or "npm", NODE_INSTALL["npm"]
        )
        return render(NODE_DOCKERFILE, {
            "base_image": NODE_BASE_IMAGE,
            "manifest_files": manifest_files,
            "install_command": install_command,
            "port": _port(classification, NODE_DEFAULT_PORT),
            "cmd": _exec_form(classification.start_command or NODE_DEFAULT_START),
        })

    if classification.language == PYTHON_LANGUAGE:
        return render(PYTHON_DOCKERFILE, {
            "base_image": PYTHON_BASE_IMAGE,
            "install_command": PYTHON_INSTALL,
            "port": _port(classification, PYTHON_DEFAULT_PORT),
            "cmd": _exec_form(classification.start_command or PYTHON_DEFAULT_START),
        })

    return render(UNKNOWN_DOCKERFILE, {
        "base_image": UNKNOWN_BASE_IMAGE,
        "port": _port(classification, UNKNOWN_DEFAULT_PORT),
        "cmd": _exec_form(classification.start_command or UNKNOWN_START),
    })


def generate_ci_pipeline(classification: Classification) -> str:
    """Render a GitHub Actions workflow that builds and smoke-tests the image."""
    if classification.language == NODE_LANGUAGE:
        _, install_command = NODE_INSTALL.get(
            classification.package_manager or "npm", NODE_INSTALL["npm"]
        )
        setup_steps = render(NODE_SETUP_STEPS, {
            "node_version": NODE_VERSION,
            "install_command": install_command,
        })
        port = _port(classification, NODE_DEFAULT_PORT)
    elif classification.language == PYTHON_LANGUAGE:
        setup_steps = render(PYTHON_SETUP_STEPS, {
            "python_version": PYTHON_VERSION,
            "install_command": (
                "if [ -f requirements.txt ]; then pip install -r requirements.txt; "
                "else pip install .; fi"
            ),
        })
        port = _port(classification, PYTHON_DEFAULT_PORT)
    else:
        setup_steps = ""
        port = _port(classification, UNKNOWN_DEFAULT_PORT)

    if setup_steps:
        setup_steps = "\n" + setup_steps

    return render(CI_PIPELINE, {
        "setup_steps": setup_steps,
        "image_name": CI_IMAGE_NAME,
        "port": port,
    })
