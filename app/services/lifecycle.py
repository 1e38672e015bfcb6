"""Read path for a diagnosis: authorize the caller, then analyze on first view.

A pending diagnosis is claimed with a compare-and-set (pending -> processing)
so only one viewer ever calls the provider. The provider call runs with no
transaction open; other viewers poll until the diagnosis is terminal.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.models.diagnosis import Diagnosis, DiagnosisStatus, TERMINAL_STATUSES, ensure_transition
from app.models.diagnosis_image import DiagnosisImage
from app.models.vehicle import Vehicle
from app.services.analysis import analyze, build_payload, record_outcome
from app.services.identity import Anonymous, Authenticated, Identity
from app.services.providers import AnalysisProvider
from app.utils.exceptions import AuthorizationError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class DiagnosisView:
    diagnosis: Diagnosis
    vehicle: Vehicle | None = None
    images: list[DiagnosisImage] = field(default_factory=list)


def authorize(diagnosis: Diagnosis, identity: Identity) -> None:
    if diagnosis.user_id:
        allowed = isinstance(identity, Authenticated) and identity.user_id == diagnosis.user_id
    else:
        allowed = isinstance(identity, Anonymous) and identity.session_token == diagnosis.session_id
    if not allowed:
        logger.warning("Unauthorized view attempt for diagnosis=%s", diagnosis.id)
        raise AuthorizationError()


async def _load_related(db: AsyncSession, diagnosis: Diagnosis) -> DiagnosisView:
    vehicle = await db.get(Vehicle, diagnosis.vehicle_id) if diagnosis.vehicle_id else None
    result = await db.execute(
        select(DiagnosisImage)
        .where(DiagnosisImage.diagnosis_id == diagnosis.id)
        .order_by(DiagnosisImage.order_index)
    )
    return DiagnosisView(diagnosis=diagnosis, vehicle=vehicle, images=list(result.scalars().all()))


async def _compare_and_set(
    db: AsyncSession, diagnosis_id: str, expected: DiagnosisStatus, target: DiagnosisStatus, *conditions
) -> bool:
    ensure_transition(expected.value, target)
    res = await db.execute(
        update(Diagnosis)
        .where(Diagnosis.id == diagnosis_id, Diagnosis.status == expected.value, *conditions)
        .values(status=target.value, updated_at=datetime.now(timezone.utc).isoformat())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return res.rowcount == 1


def _claim_is_stale(diagnosis: Diagnosis) -> bool:
    claimed_at = datetime.fromisoformat(diagnosis.updated_at)
    return datetime.now(timezone.utc) - claimed_at > timedelta(seconds=settings.analysis_claim_ttl_seconds)


async def _wait_for_terminal(session_factory: async_sessionmaker, diagnosis_id: str) -> None:
    deadline = time.monotonic() + settings.analysis_wait_timeout_seconds
    while time.monotonic() < deadline:
        async with session_factory() as db:
            status = await db.scalar(select(Diagnosis.status).where(Diagnosis.id == diagnosis_id))
        if status is None or DiagnosisStatus(status) in TERMINAL_STATUSES:
            return
        await asyncio.sleep(settings.analysis_poll_interval_seconds)
    logger.warning("Gave up waiting for diagnosis=%s to finish processing", diagnosis_id)


async def view_diagnosis(
    session_factory: async_sessionmaker,
    diagnosis_id: str,
    identity: Identity,
    provider: AnalysisProvider,
) -> DiagnosisView:
    """Return the diagnosis visible to ``identity``, analyzing it first if still pending.

    Raises NotFoundError for an unknown id and AuthorizationError when the
    caller owns neither the account nor the session it was submitted under.
    A failed analysis is returned like any other result.
    """
    payload = None
    async with session_factory() as db:
        diagnosis = await db.get(Diagnosis, diagnosis_id)
        if diagnosis is None:
            raise NotFoundError()
        authorize(diagnosis, identity)

        status = DiagnosisStatus(diagnosis.status)
        if status is DiagnosisStatus.PENDING:
            if await _compare_and_set(db, diagnosis_id, DiagnosisStatus.PENDING, DiagnosisStatus.PROCESSING):
                logger.info("Claimed diagnosis=%s for analysis", diagnosis_id)
                related = await _load_related(db, diagnosis)
                payload = build_payload(diagnosis, related.vehicle, related.images)
                await db.commit()
        elif status is DiagnosisStatus.PROCESSING and _claim_is_stale(diagnosis):
            if await _compare_and_set(
                db, diagnosis_id, DiagnosisStatus.PROCESSING, DiagnosisStatus.FAILED,
                Diagnosis.updated_at == diagnosis.updated_at,
            ):
                logger.error("Abandoned analysis claim for diagnosis=%s marked failed", diagnosis_id)

    if payload is not None:
        outcome = await analyze(payload, provider)
        async with session_factory() as db:
            await record_outcome(db, diagnosis_id, outcome)
    elif status not in TERMINAL_STATUSES:
        await _wait_for_terminal(session_factory, diagnosis_id)

    async with session_factory() as db:
        diagnosis = await db.get(Diagnosis, diagnosis_id)
        return await _load_related(db, diagnosis)
