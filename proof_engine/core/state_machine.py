#proof_engine\core\state_machine.py

from datetime import datetime

from proof_engine.core.errors import InvalidStateTransition
from proof_engine.core.models import (
    TERMINAL_STATES,
    DeploymentRecord,
    DeploymentStatus,
    utcnow,
)


# Forward one stage at a time; FAILED from any non-terminal state.
ALLOWED_TRANSITIONS = {
    DeploymentStatus.QUEUED: {
        DeploymentStatus.CLONING,
        DeploymentStatus.FAILED,
    },
    DeploymentStatus.CLONING: {
        DeploymentStatus.DETECTING,
        DeploymentStatus.FAILED,
    },
    DeploymentStatus.DETECTING: {
        DeploymentStatus.GENERATING,
        DeploymentStatus.FAILED,
    },
    DeploymentStatus.GENERATING: {
        DeploymentStatus.BUILDING,
        DeploymentStatus.FAILED,
    },
    DeploymentStatus.BUILDING: {
        DeploymentStatus.TESTING,
        DeploymentStatus.FAILED,
    },
    DeploymentStatus.TESTING: {
        DeploymentStatus.COMPLETED,
        DeploymentStatus.FAILED,
    },
}


class DeploymentStateMachine:
    @staticmethod
    def can_transition(current: DeploymentStatus, new_status: DeploymentStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS.get(current, set())

    @staticmethod
    def transition(
        record: DeploymentRecord,
        new_status: DeploymentStatus,
        *,
        now: datetime | None = None,
    ) -> DeploymentRecord:
        now = now or utcnow()

        current = record.status

        if current in TERMINAL_STATES:
            raise InvalidStateTransition(
                f"Deployment {record.deployment_id} is already {current.value}"
            )

        if not DeploymentStateMachine.can_transition(current, new_status):
            raise InvalidStateTransition(
                f"Cannot transition from {current.value} to {new_status.value}"
            )

        record.status = new_status
        record.touch(now)
        return record
