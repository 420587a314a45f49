"""Core domain models (deployments and certificates)."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from storage."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_id() -> str:
    return str(uuid4())


# ============================================
# ENUMS
# ============================================

class DeploymentStatus(Enum):
    """Pipeline stage of a deployment, in pipeline order."""

    QUEUED = "queued"
    CLONING = "cloning"
    DETECTING = "detecting"
    GENERATING = "generating"
    BUILDING = "building"
    TESTING = "testing"
    COMPLETED = "completed"
    FAILED = "failed"


STAGE_ORDER = [
    DeploymentStatus.QUEUED,
    DeploymentStatus.CLONING,
    DeploymentStatus.DETECTING,
    DeploymentStatus.GENERATING,
    DeploymentStatus.BUILDING,
    DeploymentStatus.TESTING,
    DeploymentStatus.COMPLETED,
]

TERMINAL_STATES = frozenset({DeploymentStatus.COMPLETED, DeploymentStatus.FAILED})


class Platform(Enum):
    """Target platform tag."""

    LOCAL = "local"
    RENDER = "render"


class LogLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# ============================================
# VALUE OBJECTS
# ============================================

@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    level: LogLevel
    message: str


@dataclass(frozen=True)
class Classification:
    """Inferred language/framework/start command/port of a repository."""

    language: str
    framework: Optional[str] = None
    package_manager: Optional[str] = None
    start_command: Optional[str] = None
    port: Optional[int] = None

    @property
    def label(self) -> str:
        if self.framework and self.framework != self.language:
            return f"{self.language} ({self.framework})"
        return self.language


@dataclass(frozen=True)
class Artifacts:
    dockerfile: str
    ci_pipeline: str


@dataclass(frozen=True)
class RuntimeBinding:
    container_id: str
    host_port: int
    url: str


@dataclass(frozen=True)
class HealthCheckResult:
    success: bool
    status_code: int
    response_time: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "status_code": self.status_code,
            "response_time": self.response_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HealthCheckResult":
        return cls(
            success=bool(data["success"]),
            status_code=int(data["status_code"]),
            response_time=float(data["response_time"]),
        )


@dataclass(frozen=True)
class LoadTestResult:
    total_requests: int
    successful_requests: int
    failed_requests: int
    average_latency: float
    min_latency: float
    max_latency: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "average_latency": self.average_latency,
            "min_latency": self.min_latency,
            "max_latency": self.max_latency,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoadTestResult":
        return cls(
            total_requests=int(data["total_requests"]),
            successful_requests=int(data["successful_requests"]),
            failed_requests=int(data["failed_requests"]),
            average_latency=float(data["average_latency"]),
            min_latency=float(data["min_latency"]),
            max_latency=float(data["max_latency"]),
        )


@dataclass(frozen=True)
class Metrics:
    health_check: HealthCheckResult
    load_test: LoadTestResult

    def to_dict(self) -> Dict[str, Any]:
        return {
            "health_check": self.health_check.to_dict(),
            "load_test": self.load_test.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Metrics":
        return cls(
            health_check=HealthCheckResult.from_dict(data["health_check"]),
            load_test=LoadTestResult.from_dict(data["load_test"]),
        )


# ============================================
# DEPLOYMENT
# ============================================

@dataclass
class DeploymentRecord:
    """One end-to-end attempt to clone, build, run and certify a repository."""

    # Identity
    deployment_id: str
    repo_url: str
    platform: Platform = Platform.LOCAL

    # State
    status: DeploymentStatus = DeploymentStatus.QUEUED

    # Stage outputs
    classification: Optional[Classification] = None
    artifacts: Optional[Artifacts] = None
    runtime: Optional[RuntimeBinding] = None
    metrics: Optional[Metrics] = None
    certificate_id: Optional[str] = None

    # Failure
    error: Optional[str] = None

    # Append-only log
    logs: List[LogEntry] = field(default_factory=list)

    # Timestamps
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    # Optimistic concurrency
    version: int = 0

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def add_log(
        self,
        message: str,
        level: LogLevel = LogLevel.INFO,
        *,
        now: Optional[datetime] = None,
    ) -> LogEntry:
        """Append a log entry locally and return it for persistence."""
        entry = LogEntry(timestamp=now or utcnow(), level=level, message=message)
        self.logs.append(entry)
        return entry

    def touch(self, now: Optional[datetime] = None) -> None:
        self.updated_at = now or utcnow()
        self.version += 1


# ============================================
# CERTIFICATE
# ============================================

@dataclass(frozen=True)
class CertificateSnapshot:
    """Values copied from a deployment at issuance time."""

    certificate_id: str
    deployment_id: str
    user_name: str
    repo_url: str
    platform: str
    detected_language: Optional[str]
    detected_framework: Optional[str]
    issued_at: datetime
    metrics: Metrics
    format_version: int = 1


@dataclass(frozen=True)
class CertificateRecord:
    snapshot: CertificateSnapshot
    signature: str

    @property
    def certificate_id(self) -> str:
        return self.snapshot.certificate_id

    @property
    def deployment_id(self) -> str:
        return self.snapshot.deployment_id
