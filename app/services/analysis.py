"""Run the configured analysis provider for a claimed diagnosis and record the outcome."""
import asyncio
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.diagnosis import Diagnosis, DiagnosisStatus, ensure_transition
from app.models.diagnosis_image import DiagnosisImage
from app.models.vehicle import Vehicle
from app.services.providers import AnalysisProvider, AnalysisResult, DiagnosisPayload, ImageReference

logger = logging.getLogger(__name__)


@dataclass
class AnalysisSuccess:
    provider_name: str
    result: AnalysisResult
    duration_seconds: float


@dataclass
class AnalysisFailure:
    reason: str
    duration_seconds: float


AnalysisOutcome = AnalysisSuccess | AnalysisFailure


def mask_secrets(message: str) -> str:
    return re.sub(r"(sk|gsk)-[A-Za-z0-9_-]+", r"\1-***", message)


def build_payload(
    diagnosis: Diagnosis,
    vehicle: Vehicle | None,
    images: list[DiagnosisImage],
) -> DiagnosisPayload:
    vehicle_data = None
    if vehicle is not None:
        vehicle_data = {
            "make": vehicle.make,
            "model": vehicle.model,
            "year": vehicle.year,
            "mileage": vehicle.mileage,
            "vin": vehicle.vin,
            "fuel_type": vehicle.fuel_type,
            "transmission_type": vehicle.transmission_type,
        }
    return DiagnosisPayload(
        diagnosis_id=diagnosis.id,
        category=diagnosis.category,
        description=diagnosis.user_description,
        vehicle=vehicle_data,
        images=[
            ImageReference(url=i.image_url, path=i.image_path, mime_type=i.mime_type, order_index=i.order_index)
            for i in sorted(images, key=lambda i: i.order_index)
        ],
    )


async def analyze(payload: DiagnosisPayload, provider: AnalysisProvider) -> AnalysisOutcome:
    """Call the provider exactly once; any error or timeout becomes an AnalysisFailure."""
    started = time.monotonic()
    try:
        result = await asyncio.wait_for(provider.diagnose(payload), timeout=settings.ai_timeout_seconds)
        if not isinstance(result, AnalysisResult):
            result = AnalysisResult.model_validate(result)
    except asyncio.TimeoutError:
        duration = time.monotonic() - started
        logger.error(
            "Analysis timed out for diagnosis=%s provider=%s after %.1fs",
            payload.diagnosis_id, provider.name, duration,
        )
        return AnalysisFailure(reason=f"timed out after {settings.ai_timeout_seconds}s", duration_seconds=duration)
    except Exception as e:
        duration = time.monotonic() - started
        logger.exception("Analysis FAILED for diagnosis=%s provider=%s", payload.diagnosis_id, provider.name)
        return AnalysisFailure(reason=mask_secrets(str(e)), duration_seconds=duration)

    duration = time.monotonic() - started
    logger.info(
        "Analysis completed for diagnosis=%s provider=%s confidence=%d urgency=%s in %.2fs",
        payload.diagnosis_id, provider.name, result.confidence_score, result.urgency_level, duration,
    )
    return AnalysisSuccess(provider_name=provider.name, result=result, duration_seconds=duration)


async def record_outcome(db: AsyncSession, diagnosis_id: str, outcome: AnalysisOutcome) -> bool:
    """Move a processing diagnosis to its terminal state in one UPDATE.

    Returns False when the diagnosis was no longer processing (the claim was
    lost), in which case nothing is written.
    """
    if isinstance(outcome, AnalysisSuccess):
        target = DiagnosisStatus.COMPLETED
        result = outcome.result
        values = {
            "ai_provider": outcome.provider_name,
            "identified_issue": result.identified_issue,
            "confidence_score": result.confidence_score,
            "explanation": result.explanation,
            "diy_steps": list(result.diy_steps),
            "safety_warnings": result.safety_warnings,
            "estimated_cost_min": result.estimated_cost_min,
            "estimated_cost_max": result.estimated_cost_max,
            "urgency_level": result.urgency_level,
            "safe_to_drive": result.safe_to_drive,
            "processing_time_seconds": round(outcome.duration_seconds, 3),
        }
    else:
        target = DiagnosisStatus.FAILED
        values = {}
    ensure_transition(DiagnosisStatus.PROCESSING.value, target)

    stmt = (
        update(Diagnosis)
        .where(Diagnosis.id == diagnosis_id, Diagnosis.status == DiagnosisStatus.PROCESSING.value)
        .values(status=target.value, updated_at=datetime.now(timezone.utc).isoformat(), **values)
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(stmt)
    await db.commit()

    if res.rowcount != 1:
        logger.warning("Diagnosis=%s left processing before its outcome was recorded", diagnosis_id)
        return False
    if target is DiagnosisStatus.FAILED:
        logger.info("Diagnosis=%s marked failed: %s", diagnosis_id, outcome.reason)
    return True
