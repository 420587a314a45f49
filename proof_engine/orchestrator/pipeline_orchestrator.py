# proof_engine/orchestrator/pipeline_orchestrator.py
"""Pipeline orchestrator - drives one deployment through every stage."""

import logging
from pathlib import Path
from typing import Callable, Optional

from proof_engine.certificates.issuer import CertificateIssuer
from proof_engine.core.errors import (
    DeploymentConcurrencyError,
    InvalidStateTransition,
    StageFailure,
)
from proof_engine.core.models import (
    Artifacts,
    Classification,
    DeploymentRecord,
    DeploymentStatus,
    LogLevel,
    Metrics,
    utcnow,
)
from proof_engine.core.repository import DeploymentRepository
from proof_engine.core.state_machine import DeploymentStateMachine
from proof_engine.core.validation import consistency_violations
from proof_engine.detector.detector import detect_project
from proof_engine.generator.generator import (
    CI_PIPELINE_PATH,
    DOCKERFILE_PATH,
    generate_ci_pipeline,
    generate_dockerfile,
)
from proof_engine.orchestrator.teardown import TeardownScheduler
from proof_engine.prober.prober import Prober
from proof_engine.runner.container_runner import ContainerRunner
from proof_engine.runner.git_client import SourceFetcher

logger = logging.getLogger(__name__)

DEFAULT_TEARDOWN_DELAY = 300.0

INTERRUPTED_REASON = (
    "Deployment was interrupted in the {stage} stage and will not be resumed"
)


class PipelineOrchestrator:
    """
    Owns a deployment record and drives it to completed or failed.

    Flow:
    1. queued -> cloning: fetch the repository into a per-deployment tree
    2. cloning -> detecting: classify the tree
    3. detecting -> generating: render and write Dockerfile + CI workflow
    4. generating -> building: build the image and start the container
    5. building -> testing: health check, then load test
    6. testing -> completed: issue the certificate

    Every transition is persisted with a log entry before the stage's work
    starts. Any error fails the record with the error's message; nothing
    escapes run(). Whatever the outcome, a started container is torn down
    after the teardown delay.
    """

    def __init__(
        self,
        *,
        deployment_repo: DeploymentRepository,
        source_fetcher: SourceFetcher,
        runner: ContainerRunner,
        prober: Prober,
        issuer: CertificateIssuer,
        teardown: TeardownScheduler,
        workspace_dir: Path,
        teardown_delay_seconds: float = DEFAULT_TEARDOWN_DELAY,
        detector: Callable[[Path], Classification] = detect_project,
    ):
        self._repo = deployment_repo
        self._fetcher = source_fetcher
        self._runner = runner
        self._prober = prober
        self._issuer = issuer
        self._teardown = teardown
        self._detector = detector
        self.workspace_dir = Path(workspace_dir)
        self.teardown_delay_seconds = teardown_delay_seconds

    def working_tree(self, deployment_id: str) -> Path:
        return self.workspace_dir / deployment_id

    # -------------------------
    # RUN
    # -------------------------

    def run(self, deployment_id: str) -> Optional[DeploymentRecord]:
        """
        Drive a deployment to a terminal state.

        Redelivery policy:
        - terminal record: no-op, nothing is mutated or invoked
        - record past queued (a crashed run): failed, stages not re-run
        - queued record: full pipeline

        Returns the record as last persisted, or None if it does not exist.
        """
        try:
            record = self._repo.get(deployment_id)
        except Exception as e:
            logger.error(f"[{deployment_id}] Could not load deployment: {e}", exc_info=True)
            return None

        if record is None:
            logger.error(f"[{deployment_id}] Deployment not found, dropping work item")
            return None

        if record.is_terminal():
            logger.info(
                f"[{deployment_id}] Already {record.status.value}, skipping redelivered item"
            )
            return record

        if record.status != DeploymentStatus.QUEUED:
            logger.warning(
                f"[{deployment_id}] Found in {record.status.value} on delivery, "
                f"marking interrupted"
            )
            self._fail(
                record,
                StageFailure(
                    record.status,
                    RuntimeError(INTERRUPTED_REASON.format(stage=record.status.value)),
                ),
            )
            self._schedule_teardown(record)
            return record

        logger.info(f"[{deployment_id}] 🚀 Starting pipeline for {record.repo_url}")

        try:
            self._run_stages(record)
            logger.info(f"[{deployment_id}] ✅ Deployment completed")
        except StageFailure as failure:
            logger.error(
                f"[{deployment_id}] ❌ Failed during {failure.stage.value}: {failure}",
                exc_info=failure.cause,
            )
            self._fail(record, failure)
        except Exception as e:
            logger.error(f"[{deployment_id}] ❌ Unexpected pipeline error: {e}", exc_info=True)
            self._fail(record, StageFailure(record.status, e))
        finally:
            self._schedule_teardown(record)

        return record

    def _run_stages(self, record: DeploymentRecord) -> None:
        deployment_id = record.deployment_id

        # Step 1: Clone repository
        self._advance(record, DeploymentStatus.CLONING, "Cloning repository...")
        with self._stage(record):
            tree = self._fetcher.clone(record.repo_url, self.working_tree(deployment_id))
        self._log(record, f"Repository cloned to {tree}")

        # Step 2: Detect project type
        self._advance(record, DeploymentStatus.DETECTING, "Detecting project type...")
        with self._stage(record):
            classification = self._detector(tree)
        record.classification = classification
        self._persist(record)
        self._log(record, f"Detected: {classification.label}")

        # Step 3: Generate artifacts
        self._advance(
            record,
            DeploymentStatus.GENERATING,
            "Generating Dockerfile and CI/CD pipeline...",
        )
        with self._stage(record):
            artifacts = Artifacts(
                dockerfile=generate_dockerfile(classification),
                ci_pipeline=generate_ci_pipeline(classification),
            )
            self._write_artifacts(tree, artifacts)
        record.artifacts = artifacts
        self._persist(record)
        self._log(record, "Generated Dockerfile and CI/CD pipeline")

        # Step 4: Build and run container
        self._advance(record, DeploymentStatus.BUILDING, "Building Docker image...")
        with self._stage(record):
            runtime = self._runner.build_and_run(tree, deployment_id, classification)
        record.runtime = runtime
        self._persist(record)
        self._log(record, f"Container running at {runtime.url}")

        # Step 5: Health check and load test
        self._advance(
            record,
            DeploymentStatus.TESTING,
            "Running health checks and load tests...",
        )
        with self._stage(record):
            health = self._prober.health_check(runtime.url)
        self._log(
            record,
            f"Health check: {'PASS' if health.success else 'FAIL'}",
            LogLevel.INFO if health.success else LogLevel.WARNING,
        )
        with self._stage(record):
            load = self._prober.load_test(runtime.url)
        self._log(
            record,
            f"Load test: {load.successful_requests}/{load.total_requests} successful",
        )
        record.metrics = Metrics(health_check=health, load_test=load)
        self._persist(record)

        # Step 6: Certificate, then completed
        with self._stage(record):
            certificate = self._issuer.issue(deployment_id)
        record.certificate_id = certificate.certificate_id
        DeploymentStateMachine.transition(record, DeploymentStatus.COMPLETED)
        self._persist(record)
        self._log(record, f"Certificate generated: {certificate.certificate_id}")
        self._log(record, "Deployment completed successfully!")

    # -------------------------
    # HELPERS
    # -------------------------

    def _stage(self, record: DeploymentRecord) -> "_StageGuard":
        return _StageGuard(record.status)

    def _advance(self, record: DeploymentRecord, status: DeploymentStatus, message: str) -> None:
        DeploymentStateMachine.transition(record, status)
        self._persist(record)
        self._log(record, message)
        logger.info(f"[{record.deployment_id}] -> {status.value}")

    def _persist(self, record: DeploymentRecord) -> None:
        violations = consistency_violations(record)
        if violations:
            raise InvalidStateTransition(
                f"Refusing to persist inconsistent deployment: {'; '.join(violations)}"
            )
        record.touch()
        self._repo.update(record)

    def _log(
        self,
        record: DeploymentRecord,
        message: str,
        level: LogLevel = LogLevel.INFO,
    ) -> None:
        entry = record.add_log(message, level)
        self._repo.append_log(record.deployment_id, entry)

    @staticmethod
    def _write_artifacts(tree: Path, artifacts: Artifacts) -> None:
        dockerfile = tree / DOCKERFILE_PATH
        pipeline = tree / CI_PIPELINE_PATH
        pipeline.parent.mkdir(parents=True, exist_ok=True)
        dockerfile.write_text(artifacts.dockerfile, encoding="utf-8")
        pipeline.write_text(artifacts.ci_pipeline, encoding="utf-8")

    def _fail(self, record: DeploymentRecord, failure: StageFailure) -> None:
        """Move the record to failed with the cause's message verbatim."""
        reason = str(failure.cause) or failure.cause.__class__.__name__

        try:
            if record.is_terminal() or isinstance(failure.cause, DeploymentConcurrencyError):
                # The local copy is stale or already past the stored state;
                # continue from the stored record.
                stored = self._repo.get(record.deployment_id)
                if stored is None or stored.is_terminal():
                    if stored is not None:
                        self._adopt_stored(record, stored)
                    logger.warning(
                        f"[{record.deployment_id}] Stored record is already "
                        f"{stored.status.value if stored else 'gone'}, not failing it again"
                    )
                    return
                self._adopt_stored(record, stored)

            record.certificate_id = None
            DeploymentStateMachine.transition(record, DeploymentStatus.FAILED, now=utcnow())
            record.error = reason
            record.touch()
            self._repo.update(record)
            self._log(record, f"Deployment failed: {reason}", LogLevel.ERROR)
        except Exception as e:
            logger.error(
                f"[{record.deployment_id}] Could not record failure ({reason}): {e}",
                exc_info=True,
            )

    @staticmethod
    def _adopt_stored(record: DeploymentRecord, stored: DeploymentRecord) -> None:
        """Replace the local copy with the stored one, keeping a container this run started."""
        runtime = record.runtime
        record.__dict__.update(stored.__dict__)
        if record.runtime is None:
            record.runtime = runtime

    def _schedule_teardown(self, record: DeploymentRecord) -> None:
        runtime = record.runtime
        if runtime is None:
            return

        container_id = runtime.container_id
        try:
            self._teardown.schedule(
                container_id,
                self.teardown_delay_seconds,
                lambda: self._runner.stop(container_id),
            )
        except Exception as e:
            logger.error(
                f"[{record.deployment_id}] Could not schedule teardown of "
                f"{container_id[:12]}: {e}"
            )


class _StageGuard:
    """Wraps any error raised inside a stage as StageFailure."""

    def __init__(self, stage: DeploymentStatus):
        self.stage = stage

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc is None or isinstance(exc, StageFailure):
            return False
        if not isinstance(exc, Exception):
            return False
        raise StageFailure(self.stage, exc) from exc
