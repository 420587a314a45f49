# proof_engine/core/errors.py

# -----------------------------
# Base Errors
# -----------------------------

class ProofEngineError(Exception):
    """Base class for all pipeline errors."""
    pass


# -----------------------------
# Validation / Lookup Errors
# -----------------------------

class ValidationError(ProofEngineError):
    """Invalid input, rejected before any record is created."""
    pass


class NotFoundError(ProofEngineError):
    """Lookup miss for a deployment or certificate."""
    pass


class InvalidStateTransition(ProofEngineError):
    """Illegal status transition attempted."""
    pass


# -----------------------------
# Stage Errors
# -----------------------------

class CloneError(ProofEngineError):
    """Repository could not be fetched into a working tree."""
    pass


class DetectionError(ProofEngineError):
    """Working tree missing or unreadable."""
    pass


class BuildError(ProofEngineError):
    """Image construction failed."""

    def __init__(self, message: str, build_log: str = ""):
        super().__init__(message)
        self.build_log = build_log


class RunError(ProofEngineError):
    """Container could not be started or bound."""
    pass


class SignatureError(ProofEngineError):
    """Certificate signature does not match its snapshot."""
    pass


class StageFailure(ProofEngineError):
    """Any lower-layer error raised while a pipeline stage was running."""

    def __init__(self, stage, cause: BaseException):
        super().__init__(str(cause))
        self.stage = stage
        self.cause = cause


# -----------------------------
# Persistence Errors
# -----------------------------

class PersistenceError(ProofEngineError):
    pass


class AlreadyExists(PersistenceError):
    pass


class DeploymentConcurrencyError(PersistenceError):
    """Stored version moved on since the record was read."""
    pass
