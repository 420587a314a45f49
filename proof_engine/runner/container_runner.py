# proof_engine/runner/container_runner.py
"""Container runner - builds an image from a working tree and runs it."""

import logging
import time
from pathlib import Path
from typing import Callable, Optional

import docker
from docker.errors import APIError, BuildError as DockerBuildError, DockerException, ImageNotFound, NotFound

from proof_engine.core.errors import BuildError, RunError
from proof_engine.core.models import Classification, RuntimeBinding
from proof_engine.runner.ports import PortAllocator

logger = logging.getLogger(__name__)

DEFAULT_CONTAINER_PORT = 3000
IMAGE_PREFIX = "proof-engine"
MANAGED_BY = "proof_engine"


def _build_log_text(build_log) -> str:
    """Flatten the docker SDK's build log stream into text."""
    lines = []
    for chunk in build_log or []:
        if not isinstance(chunk, dict):
            continue
        text = chunk.get("stream") or chunk.get("error") or ""
        if text:
            lines.append(text.rstrip("\n"))
    return "\n".join(lines)


class ContainerRunner:
    """
    Builds and runs one container per deployment via the Docker daemon.

    Architecture:
    - Docker SDK client (docker.from_env by default)
    - Host ports come from a shared PortAllocator
    - Labels mark containers as managed by this engine
    """

    def __init__(
        self,
        client=None,
        *,
        port_allocator: Optional[PortAllocator] = None,
        network: str = "bridge",
        startup_grace_seconds: float = 5.0,
        host: str = "localhost",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self.ports = port_allocator or PortAllocator()
        self.network = network
        self.startup_grace_seconds = startup_grace_seconds
        self.host = host
        self._sleep = sleep

    @property
    def client(self):
        if self._client is None:
            try:
                self._client = docker.from_env()
                logger.info("✅ Connected to Docker daemon")
            except DockerException as e:
                raise RunError(f"Docker not available: {e}") from e
        return self._client

    # -------------------------
    # BUILD AND RUN
    # -------------------------

    def build_and_run(
        self,
        working_tree: Path,
        deployment_id: str,
        classification: Classification,
    ) -> RuntimeBinding:
        """
        Build an image from working_tree and start it with a published port.

        Steps:
        1. Reserve host port
        2. Build image
        3. Create and start container
        4. Wait the startup grace period, then confirm it is still running

        Raises:
            BuildError: If the image cannot be built.
            RunError: If the container cannot be started or bound.
        """
        image_tag = f"{IMAGE_PREFIX}-{deployment_id}"
        container_port = classification.port or DEFAULT_CONTAINER_PORT
        host_port = self.ports.reserve()

        labels = {
            "managed_by": MANAGED_BY,
            "deployment_id": deployment_id,
        }

        # Step 1: Build image
        logger.info(f"[{deployment_id}] Building image {image_tag} from {working_tree}")
        self._build_image(working_tree, image_tag, labels)
        logger.info(f"[{deployment_id}] ✅ Image built")

        # Step 2: Run container
        logger.info(
            f"[{deployment_id}] Starting container: {container_port}/tcp -> host {host_port}"
        )
        try:
            container = self.client.containers.create(
                image_tag,
                name=image_tag,
                ports={f"{container_port}/tcp": host_port},
                labels=labels,
                network_mode=self.network,
                environment={"PORT": str(container_port)},
            )
        except (APIError, ImageNotFound) as e:
            raise RunError(f"Failed to create container: {e}") from e

        try:
            container.start()
        except APIError as e:
            # Created but not started; nothing will schedule its teardown
            self._remove_unstarted(container)
            raise RunError(f"Failed to start container: {e}") from e

        logger.info(f"[{deployment_id}] ✅ Container started: {container.id[:12]}")

        # Step 3: Grace period for the process to start listening
        self._sleep(self.startup_grace_seconds)

        try:
            container.reload()
        except APIError as e:
            self.stop(container.id)
            raise RunError(f"Container disappeared during startup: {e}") from e

        if container.status not in ("running", "created"):
            output = self._tail_logs(container)
            self.stop(container.id)
            raise RunError(
                f"Container exited during startup (status {container.status})"
                + (f": {output}" if output else "")
            )

        return RuntimeBinding(
            container_id=container.id,
            host_port=host_port,
            url=f"http://{self.host}:{host_port}",
        )

    def _build_image(self, working_tree: Path, image_tag: str, labels) -> None:
        try:
            self.client.images.build(
                path=str(working_tree),
                tag=image_tag,
                rm=True,
                forcerm=True,
                labels=labels,
            )
        except DockerBuildError as e:
            build_log = _build_log_text(e.build_log)
            raise BuildError(f"Failed to build image: {e.msg}", build_log=build_log) from e
        except (APIError, TypeError) as e:
            raise BuildError(f"Failed to build image: {e}") from e

    @staticmethod
    def _remove_unstarted(container) -> None:
        try:
            container.remove(force=True)
            logger.info(f"Removed unstarted container {container.id[:12]}")
        except DockerException as e:
            logger.error(f"Failed to remove unstarted container {container.id[:12]}: {e}")

    @staticmethod
    def _tail_logs(container, lines: int = 20) -> str:
        try:
            raw = container.logs(tail=lines)
        except APIError:
            return ""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        return raw.strip()

    # -------------------------
    # STOP
    # -------------------------

    def stop(self, container_id: str) -> bool:
        """
        Stop and remove a container.

        Best effort: failures are logged and reported as False, never raised.
        """
        try:
            container = self.client.containers.get(container_id)
            container.stop(timeout=10)
            container.remove(force=True)
            logger.info(f"Container {container_id[:12]} stopped and removed")
            return True
        except NotFound:
            logger.warning(f"Container {container_id[:12]} not found, nothing to stop")
            return False
        except (DockerException, RunError) as e:
            logger.error(f"Failed to stop container {container_id[:12]}: {e}")
            return False
