"""Test certificate issuance, signing and verification."""

import dataclasses
import json
from datetime import datetime, timezone

import pytest

from conftest import TEST_SECRET
from proof_engine.certificates.issuer import (
    CertificateIssuer,
    serialize_snapshot,
)
from proof_engine.certificates.render import render_certificate_html, render_not_found_html
from proof_engine.core.errors import NotFoundError, SignatureError, ValidationError
from proof_engine.core.models import DeploymentRecord, DeploymentStatus, Artifacts, RuntimeBinding
from proof_engine.infrastructure.postgres.repository import PostgresCertificateRepository

FIXED_NOW = datetime(2026, 10, 19, 9, 30, 15, 123456, tzinfo=timezone.utc)


@pytest.fixture
def tested_deployment(deployment_repo, sample_classification, sample_metrics):
    """A deployment that has been through testing."""
    record = DeploymentRecord(
        deployment_id="dep-1",
        repo_url="https://github.com/acme/app",
        status=DeploymentStatus.TESTING,
        classification=sample_classification,
        artifacts=Artifacts(dockerfile="FROM node:18-alpine\n", ci_pipeline="name: Deploy\n"),
        runtime=RuntimeBinding(container_id="c1", host_port=4000, url="http://localhost:4000"),
        metrics=sample_metrics,
    )
    deployment_repo.create(record)
    return record


@pytest.fixture
def fixed_issuer(deployment_repo, certificate_repo):
    return CertificateIssuer(
        deployment_repo=deployment_repo,
        certificate_repo=certificate_repo,
        secret=TEST_SECRET,
        clock=lambda: FIXED_NOW,
    )


class TestIssue:
    """Test issuance."""

    def test_snapshot_copies_deployment(self, fixed_issuer, tested_deployment, sample_metrics):
        """Test the snapshot carries the deployment's values."""
        certificate = fixed_issuer.issue("dep-1")
        snapshot = certificate.snapshot

        assert snapshot.deployment_id == "dep-1"
        assert snapshot.repo_url == "https://github.com/acme/app"
        assert snapshot.platform == "local"
        assert snapshot.user_name == "Anonymous Developer"
        assert snapshot.detected_language == "Node.js"
        assert snapshot.detected_framework == "Express"
        assert snapshot.metrics == sample_metrics
        assert snapshot.issued_at == FIXED_NOW.replace(microsecond=123000)

    def test_persisted(self, fixed_issuer, tested_deployment, certificate_repo):
        """Test the certificate is stored and findable by deployment."""
        certificate = fixed_issuer.issue("dep-1")

        assert certificate_repo.get(certificate.certificate_id) == certificate
        assert certificate_repo.list_by_deployment("dep-1") == [certificate]

    def test_unknown_deployment(self, fixed_issuer):
        """Test issuing for a missing deployment raises NotFoundError."""
        with pytest.raises(NotFoundError):
            fixed_issuer.issue("missing")

    def test_requires_metrics(self, fixed_issuer, deployment_repo):
        """Test a deployment without metrics cannot be certified."""
        deployment_repo.create(
            DeploymentRecord(deployment_id="dep-2", repo_url="https://github.com/acme/app")
        )

        with pytest.raises(ValidationError):
            fixed_issuer.issue("dep-2")

    def test_terminal_deployment_not_certified(
        self, fixed_issuer, deployment_repo, certificate_repo, tested_deployment
    ):
        """Test a deployment that already failed is never certified."""
        record = deployment_repo.get("dep-1")
        record.status = DeploymentStatus.FAILED
        record.error = "Deployment was interrupted in the testing stage and will not be resumed"
        record.touch()
        deployment_repo.update(record)

        with pytest.raises(ValidationError):
            fixed_issuer.issue("dep-1")
        assert certificate_repo.list_by_deployment("dep-1") == []

    def test_empty_secret_rejected(self, deployment_repo, certificate_repo):
        """Test the issuer refuses to sign with an empty key."""
        with pytest.raises(ValueError):
            CertificateIssuer(
                deployment_repo=deployment_repo,
                certificate_repo=certificate_repo,
                secret="",
            )


class TestSignature:
    """Test HMAC signing and verification."""

    def test_signature_is_hex_sha256(self, fixed_issuer, tested_deployment):
        """Test signature is a 64 character hex digest."""
        signature = fixed_issuer.issue("dep-1").signature

        assert len(signature) == 64
        int(signature, 16)

    def test_verifies(self, fixed_issuer, tested_deployment):
        """Test a fresh certificate verifies."""
        certificate = fixed_issuer.issue("dep-1")

        assert fixed_issuer.verify_certificate(certificate)
        assert fixed_issuer.verify(serialize_snapshot(certificate.snapshot), certificate.signature)
        fixed_issuer.verify_or_raise(certificate)

    @pytest.mark.parametrize("field, value", [
        ("repo_url", "https://github.com/acme/other"),
        ("user_name", "Mallory"),
        ("detected_framework", "Flask"),
        ("platform", "render"),
    ])
    def test_tampered_snapshot_fails(self, fixed_issuer, tested_deployment, field, value):
        """Test changing any signed field breaks verification."""
        certificate = fixed_issuer.issue("dep-1")
        tampered = dataclasses.replace(certificate.snapshot, **{field: value})

        assert not fixed_issuer.verify(tampered, certificate.signature)

    def test_tampered_metrics_fail(self, fixed_issuer, tested_deployment):
        """Test changing a metric breaks verification."""
        certificate = fixed_issuer.issue("dep-1")
        metrics = certificate.snapshot.metrics
        tampered = dataclasses.replace(
            certificate.snapshot,
            metrics=dataclasses.replace(
                metrics,
                load_test=dataclasses.replace(metrics.load_test, successful_requests=50),
            ),
        )

        assert not fixed_issuer.verify(tampered, certificate.signature)

    def test_tampered_signature_fails(self, fixed_issuer, tested_deployment):
        """Test a modified signature does not verify."""
        certificate = fixed_issuer.issue("dep-1")
        forged = ("0" if certificate.signature[0] != "0" else "1") + certificate.signature[1:]

        assert not fixed_issuer.verify(certificate.snapshot, forged)
        assert not fixed_issuer.verify(certificate.snapshot, None)

        with pytest.raises(SignatureError):
            fixed_issuer.verify_or_raise(dataclasses.replace(certificate, signature=forged))

    def test_other_secret_fails(self, fixed_issuer, tested_deployment, deployment_repo, certificate_repo):
        """Test a different key cannot verify."""
        certificate = fixed_issuer.issue("dep-1")
        other = CertificateIssuer(
            deployment_repo=deployment_repo,
            certificate_repo=certificate_repo,
            secret="another-secret",
        )

        assert not other.verify_certificate(certificate)

    def test_non_ascii_values(self, deployment_repo, certificate_repo, tested_deployment):
        """Test non-ASCII user names sign and verify."""
        issuer = CertificateIssuer(
            deployment_repo=deployment_repo,
            certificate_repo=certificate_repo,
            secret=TEST_SECRET,
            user_name="Zoë Ångström",
        )
        certificate = issuer.issue("dep-1")

        assert issuer.verify_certificate(certificate)
        assert not issuer.verify(certificate.snapshot, "é" * 64)


class TestSerialization:
    """Test the canonical encoding."""

    def test_stable_and_sorted(self, fixed_issuer, tested_deployment):
        """Test serialization is reproducible with sorted keys and no whitespace."""
        snapshot = fixed_issuer.issue("dep-1").snapshot

        first = serialize_snapshot(snapshot)
        second = serialize_snapshot(dataclasses.replace(snapshot))

        assert first == second
        assert b" " not in first.replace(b"Anonymous Developer", b"")
        payload = json.loads(first)
        assert list(payload) == sorted(payload)
        assert payload["issued_at"] == "2026-10-19T09:30:15.123Z"
        assert payload["format_version"] == 1

    def test_unknown_format_version(self, fixed_issuer, tested_deployment):
        """Test serializing a snapshot of another version is refused."""
        snapshot = dataclasses.replace(fixed_issuer.issue("dep-1").snapshot, format_version=2)

        with pytest.raises(ValidationError):
            serialize_snapshot(snapshot)

    def test_survives_storage_round_trip(
        self, deployment_repo, tested_deployment, test_session_factory
    ):
        """Test a certificate read back from SQL still verifies."""
        store = PostgresCertificateRepository(test_session_factory)
        issuer = CertificateIssuer(
            deployment_repo=deployment_repo,
            certificate_repo=store,
            secret=TEST_SECRET,
        )
        certificate = issuer.issue("dep-1")

        loaded = store.get(certificate.certificate_id)

        assert loaded.snapshot == certificate.snapshot
        assert issuer.verify_certificate(loaded)


class TestRender:
    """Test the HTML page."""

    def test_page_contains_values(self, fixed_issuer, tested_deployment):
        """Test the page shows ids, repo and signature."""
        certificate = fixed_issuer.issue("dep-1")

        html = render_certificate_html(certificate)

        assert certificate.certificate_id in html
        assert "https://github.com/acme/app" in html
        assert certificate.signature in html
        assert "48/50" in html
        assert "2026-10-19 09:30:15 UTC" in html

    def test_values_are_escaped(self, deployment_repo, certificate_repo, tested_deployment):
        """Test user supplied text is HTML escaped."""
        issuer = CertificateIssuer(
            deployment_repo=deployment_repo,
            certificate_repo=certificate_repo,
            secret=TEST_SECRET,
            user_name="<script>alert(1)</script>",
        )

        html = render_certificate_html(issuer.issue("dep-1"))

        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_not_found_page(self):
        """Test the not-found page names the id."""
        assert "cert-404" in render_not_found_html("cert-404")
