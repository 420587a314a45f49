#proof_engine\infrastructure\postgres\queue.py

"""PostgreSQL-backed work queue (lease-based, at-least-once)."""

from datetime import timedelta
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from proof_engine.core.errors import PersistenceError
from proof_engine.core.models import as_utc, new_id, utcnow
from proof_engine.core.queue import WorkItem, WorkQueue
from proof_engine.infrastructure.postgres.models import DeploymentJobORM


def orm_to_item(orm: DeploymentJobORM) -> WorkItem:
    return WorkItem(
        item_id=orm.job_id,
        deployment_id=orm.deployment_id,
        enqueued_at=as_utc(orm.enqueued_at),
        attempts=orm.attempts,
        lease_owner=orm.lease_owner,
        lease_expires_at=as_utc(orm.lease_expires_at),
    )


class PostgresWorkQueue(WorkQueue):
    """
    Jobs live in the deployment_jobs table until acknowledged.

    Claiming uses SELECT ... FOR UPDATE SKIP LOCKED so concurrent workers
    never lease the same row.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def enqueue(self, deployment_id: str) -> WorkItem:
        session = self._session_factory()
        try:
            orm = DeploymentJobORM(
                job_id=new_id(),
                deployment_id=deployment_id,
                enqueued_at=utcnow(),
                attempts=0,
            )
            session.add(orm)
            session.commit()
            return orm_to_item(orm)
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to enqueue deployment: {e}") from e
        finally:
            session.close()

    def claim(self, worker_id: str, lease_seconds: int) -> Optional[WorkItem]:
        session = self._session_factory()
        try:
            now = utcnow()
            orm = session.execute(
                select(DeploymentJobORM)
                .where(
                    or_(
                        DeploymentJobORM.lease_expires_at.is_(None),
                        DeploymentJobORM.lease_expires_at <= now,
                    )
                )
                .order_by(DeploymentJobORM.enqueued_at)
                .limit(1)
                .with_for_update(skip_locked=True)
            ).scalars().first()

            if orm is None:
                session.rollback()
                return None

            orm.lease_owner = worker_id
            orm.lease_expires_at = now + timedelta(seconds=lease_seconds)
            orm.attempts += 1
            session.commit()
            return orm_to_item(orm)
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to claim work item: {e}") from e
        finally:
            session.close()

    def renew(self, item_id: str, worker_id: str, lease_seconds: int) -> bool:
        session = self._session_factory()
        try:
            orm = session.get(DeploymentJobORM, item_id, with_for_update=True)
            if orm is None or orm.lease_owner != worker_id:
                return False

            now = utcnow()
            expires = as_utc(orm.lease_expires_at)
            if not expires or expires <= now:
                return False

            orm.lease_expires_at = now + timedelta(seconds=lease_seconds)
            session.commit()
            return True
        finally:
            session.close()

    def ack(self, item_id: str) -> None:
        session = self._session_factory()
        try:
            orm = session.get(DeploymentJobORM, item_id)
            if orm is not None:
                session.delete(orm)
                session.commit()
        finally:
            session.close()

    def nack(self, item_id: str) -> None:
        session = self._session_factory()
        try:
            orm = session.get(DeploymentJobORM, item_id)
            if orm is not None:
                orm.lease_owner = None
                orm.lease_expires_at = None
                session.commit()
        finally:
            session.close()

    def size(self) -> int:
        session = self._session_factory()
        try:
            return session.execute(
                select(func.count()).select_from(DeploymentJobORM)
            ).scalar_one()
        finally:
            session.close()
