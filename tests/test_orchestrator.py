"""Test the pipeline orchestrator end to end with faked collaborators."""

from conftest import REPO_URL, FakeFetcher, FakeProber, FakeRunner
from proof_engine.core.errors import BuildError, CloneError, DetectionError, RunError
from proof_engine.core.models import (
    Artifacts,
    DeploymentStatus,
    HealthCheckResult,
    LogLevel,
    RuntimeBinding,
)
from proof_engine.generator.generator import CI_PIPELINE_PATH, DOCKERFILE_PATH
from proof_engine.orchestrator.pipeline_orchestrator import PipelineOrchestrator


FORWARD_STATUSES = [
    DeploymentStatus.CLONING,
    DeploymentStatus.DETECTING,
    DeploymentStatus.GENERATING,
    DeploymentStatus.BUILDING,
    DeploymentStatus.TESTING,
    DeploymentStatus.COMPLETED,
]


def build_orchestrator(deployment_repo, issuer, teardown, tmp_path, **overrides):
    options = dict(
        deployment_repo=deployment_repo,
        source_fetcher=FakeFetcher(),
        runner=FakeRunner(),
        prober=FakeProber(),
        issuer=issuer,
        teardown=teardown,
        workspace_dir=tmp_path / "workspaces",
        teardown_delay_seconds=300.0,
    )
    options.update(overrides)
    return PipelineOrchestrator(**options)


def messages(record):
    return [entry.message for entry in record.logs]


def observed_statuses(deployment_repo):
    """Persisted statuses with consecutive repeats collapsed."""
    collapsed = []
    for status in deployment_repo.statuses:
        if not collapsed or collapsed[-1] != status:
            collapsed.append(status)
    return collapsed


class TestHappyPath:
    """Test a deployment that reaches completed."""

    def test_walks_every_stage_in_order(self, service, orchestrator, deployment_repo):
        """Test statuses advance one stage at a time to completed."""
        record = service.create_deployment(REPO_URL)

        orchestrator.run(record.deployment_id)

        assert observed_statuses(deployment_repo) == FORWARD_STATUSES
        assert deployment_repo.violations == []

    def test_completed_record_has_every_output(
        self, service, orchestrator, deployment_repo, certificate_repo, issuer
    ):
        """Test completed record carries classification, artifacts, runtime, metrics and a certificate."""
        record = service.create_deployment(REPO_URL)

        orchestrator.run(record.deployment_id)

        stored = deployment_repo.get(record.deployment_id)
        assert stored.status == DeploymentStatus.COMPLETED
        assert stored.error is None
        assert stored.classification.language == "Node.js"
        assert stored.classification.framework == "Express"
        assert stored.classification.start_command == "node server.js"
        assert "FROM node:18-alpine" in stored.artifacts.dockerfile
        assert stored.runtime.url == "http://localhost:4321"
        assert stored.metrics.health_check.success is True
        assert stored.metrics.load_test.total_requests == 50

        certificate = certificate_repo.get(stored.certificate_id)
        assert certificate is not None
        assert certificate.deployment_id == record.deployment_id
        assert issuer.verify_certificate(certificate)

    def test_log_messages(self, service, orchestrator, deployment_repo):
        """Test logs start with the queued entry and narrate each stage."""
        record = service.create_deployment(REPO_URL)

        orchestrator.run(record.deployment_id)

        logs = messages(deployment_repo.get(record.deployment_id))
        assert logs[0] == "Deployment queued"
        for expected in (
            "Cloning repository...",
            "Detecting project type...",
            "Generating Dockerfile and CI/CD pipeline...",
            "Building Docker image...",
            "Running health checks and load tests...",
        ):
            assert expected in logs
        assert logs.index("Cloning repository...") < logs.index("Building Docker image...")
        assert logs[-1] == "Deployment completed successfully!"

    def test_artifacts_written_to_working_tree(self, service, orchestrator, deployment_repo):
        """Test Dockerfile and CI workflow land in the cloned tree."""
        record = service.create_deployment(REPO_URL)

        orchestrator.run(record.deployment_id)

        tree = orchestrator.working_tree(record.deployment_id)
        stored = deployment_repo.get(record.deployment_id)
        assert (tree / DOCKERFILE_PATH).read_text() == stored.artifacts.dockerfile
        assert (tree / CI_PIPELINE_PATH).read_text() == stored.artifacts.ci_pipeline

    def test_teardown_scheduled_after_completion(self, service, orchestrator, teardown, runner):
        """Test the started container is scheduled for teardown."""
        record = service.create_deployment(REPO_URL)

        orchestrator.run(record.deployment_id)

        assert len(teardown.scheduled) == 1
        key, delay, action = teardown.scheduled[0]
        assert key == f"container-{record.deployment_id}"
        assert delay == 300.0

        action()
        assert runner.stopped == [key]

    def test_failed_health_check_is_data(self, service, deployment_repo, issuer, teardown, tmp_path):
        """Test an unhealthy endpoint still produces a certificate."""
        unhealthy = HealthCheckResult(success=False, status_code=0, response_time=0.0)
        orchestrator = build_orchestrator(
            deployment_repo, issuer, teardown, tmp_path,
            prober=FakeProber(health=unhealthy),
        )
        record = service.create_deployment(REPO_URL)

        orchestrator.run(record.deployment_id)

        stored = deployment_repo.get(record.deployment_id)
        assert stored.status == DeploymentStatus.COMPLETED
        assert stored.metrics.health_check.success is False
        assert any(
            e.level == LogLevel.WARNING and e.message == "Health check: FAIL"
            for e in stored.logs
        )


class TestStageFailures:
    """Test a failing stage moves the record to failed."""

    def test_clone_failure(self, service, deployment_repo, issuer, teardown, tmp_path):
        """Test clone failure keeps the message verbatim and runs nothing else."""
        runner = FakeRunner()
        orchestrator = build_orchestrator(
            deployment_repo, issuer, teardown, tmp_path,
            source_fetcher=FakeFetcher(error=CloneError("Failed to clone repository: not found")),
            runner=runner,
        )
        record = service.create_deployment(REPO_URL)

        orchestrator.run(record.deployment_id)

        stored = deployment_repo.get(record.deployment_id)
        assert stored.status == DeploymentStatus.FAILED
        assert stored.error == "Failed to clone repository: not found"
        assert stored.classification is None
        assert stored.certificate_id is None
        assert runner.started == []
        assert teardown.scheduled == []

        last = stored.logs[-1]
        assert last.level == LogLevel.ERROR
        assert last.message == "Deployment failed: Failed to clone repository: not found"

    def test_detection_failure(self, service, deployment_repo, issuer, teardown, tmp_path):
        """Test detection failure leaves classification empty."""
        def broken_detector(path):
            raise DetectionError("Failed to detect project: invalid package.json")

        orchestrator = build_orchestrator(
            deployment_repo, issuer, teardown, tmp_path, detector=broken_detector,
        )
        record = service.create_deployment(REPO_URL)

        orchestrator.run(record.deployment_id)

        stored = deployment_repo.get(record.deployment_id)
        assert stored.status == DeploymentStatus.FAILED
        assert stored.error == "Failed to detect project: invalid package.json"
        assert stored.classification is None
        assert deployment_repo.violations == []

    def test_build_failure(self, service, deployment_repo, issuer, teardown, tmp_path):
        """Test build failure keeps artifacts and schedules no teardown."""
        orchestrator = build_orchestrator(
            deployment_repo, issuer, teardown, tmp_path,
            runner=FakeRunner(error=BuildError("Failed to build image: npm ERR!")),
        )
        record = service.create_deployment(REPO_URL)

        orchestrator.run(record.deployment_id)

        stored = deployment_repo.get(record.deployment_id)
        assert stored.status == DeploymentStatus.FAILED
        assert stored.error == "Failed to build image: npm ERR!"
        assert stored.artifacts is not None
        assert stored.runtime is None
        assert teardown.scheduled == []

    def test_run_failure(self, service, deployment_repo, issuer, teardown, tmp_path):
        """Test container start failure is recorded."""
        orchestrator = build_orchestrator(
            deployment_repo, issuer, teardown, tmp_path,
            runner=FakeRunner(error=RunError("Container exited during startup (status exited)")),
        )
        record = service.create_deployment(REPO_URL)

        orchestrator.run(record.deployment_id)

        stored = deployment_repo.get(record.deployment_id)
        assert stored.status == DeploymentStatus.FAILED
        assert stored.error.startswith("Container exited during startup")

    def test_probe_crash_still_tears_down(self, service, deployment_repo, issuer, teardown, tmp_path):
        """Test failure after the container started schedules its teardown."""
        orchestrator = build_orchestrator(
            deployment_repo, issuer, teardown, tmp_path,
            prober=FakeProber(error=RuntimeError("probe exploded")),
        )
        record = service.create_deployment(REPO_URL)

        orchestrator.run(record.deployment_id)

        stored = deployment_repo.get(record.deployment_id)
        assert stored.status == DeploymentStatus.FAILED
        assert stored.error == "probe exploded"
        assert stored.runtime is not None
        assert stored.metrics is None
        assert [key for key, _, _ in teardown.scheduled] == [stored.runtime.container_id]

    def test_certificate_failure(self, service, deployment_repo, issuer, teardown, tmp_path, monkeypatch):
        """Test failure to issue leaves metrics but no certificate id."""
        def refuse(deployment_id):
            raise RuntimeError("certificate store unavailable")

        monkeypatch.setattr(issuer, "issue", refuse)
        orchestrator = build_orchestrator(deployment_repo, issuer, teardown, tmp_path)
        record = service.create_deployment(REPO_URL)

        orchestrator.run(record.deployment_id)

        stored = deployment_repo.get(record.deployment_id)
        assert stored.status == DeploymentStatus.FAILED
        assert stored.metrics is not None
        assert stored.certificate_id is None
        assert stored.error == "certificate store unavailable"
        assert len(teardown.scheduled) == 1

    def test_failure_never_escapes_run(self, service, deployment_repo, issuer, teardown, tmp_path):
        """Test run returns normally whatever the collaborator raises."""
        orchestrator = build_orchestrator(
            deployment_repo, issuer, teardown, tmp_path,
            source_fetcher=FakeFetcher(error=ValueError("weird")),
        )
        record = service.create_deployment(REPO_URL)

        result = orchestrator.run(record.deployment_id)

        assert result.status == DeploymentStatus.FAILED


class TestRedelivery:
    """Test at-least-once delivery is absorbed."""

    def test_missing_deployment(self, orchestrator):
        """Test unknown id returns None without raising."""
        assert orchestrator.run("does-not-exist") is None

    def test_completed_is_noop(self, service, orchestrator, deployment_repo, fetcher, teardown):
        """Test a second delivery of a completed deployment changes nothing."""
        record = service.create_deployment(REPO_URL)
        orchestrator.run(record.deployment_id)
        before = deployment_repo.get(record.deployment_id)

        orchestrator.run(record.deployment_id)

        after = deployment_repo.get(record.deployment_id)
        assert after.version == before.version
        assert len(after.logs) == len(before.logs)
        assert len(fetcher.calls) == 1
        assert len(teardown.scheduled) == 1

    def test_failed_is_noop(self, service, deployment_repo, issuer, teardown, tmp_path):
        """Test a second delivery of a failed deployment changes nothing."""
        fetcher = FakeFetcher(error=CloneError("Failed to clone repository: boom"))
        orchestrator = build_orchestrator(
            deployment_repo, issuer, teardown, tmp_path, source_fetcher=fetcher,
        )
        record = service.create_deployment(REPO_URL)
        orchestrator.run(record.deployment_id)

        orchestrator.run(record.deployment_id)

        assert len(fetcher.calls) == 1
        assert deployment_repo.get(record.deployment_id).error == "Failed to clone repository: boom"

    def test_interrupted_mid_pipeline(
        self, deployment_repo, service, orchestrator, fetcher, teardown, sample_classification
    ):
        """Test a record found past queued is failed instead of re-run."""
        record = service.create_deployment(REPO_URL)
        stored = deployment_repo.get(record.deployment_id)
        stored.status = DeploymentStatus.BUILDING
        stored.classification = sample_classification
        stored.artifacts = Artifacts(dockerfile="FROM scratch\n", ci_pipeline="name: x\n")
        stored.runtime = RuntimeBinding(container_id="orphan", host_port=4000, url="http://localhost:4000")
        stored.touch()
        deployment_repo.update(stored)

        orchestrator.run(record.deployment_id)

        after = deployment_repo.get(record.deployment_id)
        assert after.status == DeploymentStatus.FAILED
        assert "interrupted" in after.error
        assert fetcher.calls == []
        assert [key for key, _, _ in teardown.scheduled] == ["orphan"]


class RedeliveringRunner(FakeRunner):
    """Hands the same deployment to a second run while the image builds."""

    def __init__(self):
        super().__init__()
        self.orchestrator = None
        self.redelivered = None

    def build_and_run(self, working_tree, deployment_id, classification):
        self.redelivered = self.orchestrator.run(deployment_id)
        return super().build_and_run(working_tree, deployment_id, classification)


class RedeliveringProber(FakeProber):
    """Hands the same deployment to a second run during the health check."""

    def __init__(self):
        super().__init__()
        self.orchestrator = None
        self.deployment_id = None

    def health_check(self, url):
        self.orchestrator.run(self.deployment_id)
        return super().health_check(url)


class TestLostLease:
    """Test a run that keeps going after its work item was handed to another run."""

    def test_live_run_cannot_revive_failed_record(
        self, service, deployment_repo, certificate_repo, issuer, teardown, tmp_path
    ):
        """Test the stale run stops at its next write and the record stays failed."""
        runner = RedeliveringRunner()
        prober = FakeProber()
        orchestrator = build_orchestrator(
            deployment_repo, issuer, teardown, tmp_path, runner=runner, prober=prober,
        )
        runner.orchestrator = orchestrator
        record = service.create_deployment(REPO_URL)

        result = orchestrator.run(record.deployment_id)

        assert runner.redelivered.status == DeploymentStatus.FAILED
        stored = deployment_repo.get(record.deployment_id)
        assert stored.status == DeploymentStatus.FAILED
        assert "interrupted in the building stage" in stored.error
        assert stored.certificate_id is None
        assert result.status == DeploymentStatus.FAILED
        assert deployment_repo.statuses.count(DeploymentStatus.FAILED) == 1
        assert deployment_repo.statuses[-1] == DeploymentStatus.FAILED
        assert prober.urls == []
        assert certificate_repo.list_by_deployment(record.deployment_id) == []
        assert "Deployment completed successfully!" not in messages(stored)

    def test_stale_run_tears_down_its_container(
        self, service, deployment_repo, issuer, teardown, tmp_path
    ):
        """Test the container started by the stale run is still torn down."""
        runner = RedeliveringRunner()
        orchestrator = build_orchestrator(
            deployment_repo, issuer, teardown, tmp_path, runner=runner,
        )
        runner.orchestrator = orchestrator
        record = service.create_deployment(REPO_URL)

        orchestrator.run(record.deployment_id)

        assert [key for key, _, _ in teardown.scheduled] == [f"container-{record.deployment_id}"]

    def test_redelivery_during_testing(
        self, service, deployment_repo, certificate_repo, issuer, teardown, tmp_path
    ):
        """Test a record failed during testing never reaches completed."""
        prober = RedeliveringProber()
        orchestrator = build_orchestrator(
            deployment_repo, issuer, teardown, tmp_path, prober=prober,
        )
        prober.orchestrator = orchestrator
        record = service.create_deployment(REPO_URL)
        prober.deployment_id = record.deployment_id

        orchestrator.run(record.deployment_id)

        stored = deployment_repo.get(record.deployment_id)
        assert stored.status == DeploymentStatus.FAILED
        assert "interrupted in the testing stage" in stored.error
        assert DeploymentStatus.COMPLETED not in deployment_repo.statuses
        assert stored.metrics is None
        assert certificate_repo.list_by_deployment(record.deployment_id) == []
