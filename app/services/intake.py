"""Accept a diagnosis submission as a single unit of work."""
import logging
import uuid
from datetime import datetime, timezone

import pydantic
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.diagnosis import Diagnosis, DiagnosisStatus
from app.models.vehicle import Vehicle
from app.schemas.diagnosis import DiagnosisCreate
from app.services.identity import Authenticated, Identity
from app.services.images import attach_images, prepare_uploads
from app.utils.exceptions import IntakeError, ValidationError

logger = logging.getLogger(__name__)

_REQUIRED_MESSAGES = {
    "category": "Please select a category for your issue.",
    "description": "Please describe your vehicle issue.",
    "vehicle.make": "Please provide the vehicle make.",
    "vehicle.model": "Please provide the vehicle model.",
}


def validate_submission(data: dict) -> DiagnosisCreate:
    try:
        return DiagnosisCreate.model_validate(data)
    except pydantic.ValidationError as exc:
        errors: dict[str, str] = {}
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "__root__"
            if error["type"] == "missing" and field in _REQUIRED_MESSAGES:
                errors[field] = _REQUIRED_MESSAGES[field]
            elif error["type"] == "value_error":
                errors.setdefault(field, str(error["ctx"]["error"]))
            else:
                errors.setdefault(field, error["msg"])
        raise ValidationError(errors) from exc


async def _resolve_vehicle(
    db: AsyncSession, submission: DiagnosisCreate, identity: Identity, now: str
) -> str | None:
    user_id = identity.user_id if isinstance(identity, Authenticated) else None

    if submission.vehicle_id:
        # only an authenticated caller's own vehicle can be referenced
        vehicle = await db.get(Vehicle, submission.vehicle_id)
        if vehicle is not None and user_id is not None and vehicle.user_id == user_id:
            return vehicle.id
        logger.info("Ignoring vehicle_id=%s not owned by caller", submission.vehicle_id)
        return None

    if submission.vehicle is None:
        return None

    vehicle = Vehicle(
        id=str(uuid.uuid4()),
        user_id=user_id,
        make=submission.vehicle.make,
        model=submission.vehicle.model,
        year=submission.vehicle.year,
        mileage=submission.vehicle.mileage,
        created_at=now,
        updated_at=now,
    )
    db.add(vehicle)
    await db.flush()
    return vehicle.id


async def submit_diagnosis(
    session_factory: async_sessionmaker,
    data: dict,
    uploads,
    identity: Identity,
    blob_store,
) -> str:
    """Create the vehicle (if any), the pending diagnosis and its images.

    Returns the new diagnosis id. Nothing is persisted when validation fails
    (ValidationError) or when any later step fails (IntakeError).
    """
    diagnosis_id = str(uuid.uuid4())
    submission = validate_submission(data)
    images = await prepare_uploads(uploads, diagnosis_id)

    now = datetime.now(timezone.utc).isoformat()
    written: list[str] = []

    try:
        async with session_factory() as db:
            async with db.begin():
                vehicle_id = await _resolve_vehicle(db, submission, identity, now)

                db.add(Diagnosis(
                    id=diagnosis_id,
                    user_id=identity.user_id if isinstance(identity, Authenticated) else None,
                    session_id=identity.session_token,
                    vehicle_id=vehicle_id,
                    category=submission.category,
                    user_description=submission.description,
                    voice_note_url=submission.voice_note_url,
                    status=DiagnosisStatus.PENDING.value,
                    created_at=now,
                    updated_at=now,
                ))
                await db.flush()

                if images:
                    await attach_images(db, diagnosis_id, images, blob_store, written)
    except Exception:
        logger.exception("Diagnosis submission failed for diagnosis=%s", diagnosis_id)
        for path in written:
            try:
                await blob_store.delete(path)
            except Exception:
                logger.exception("Could not discard blob %s for diagnosis=%s", path, diagnosis_id)
        raise IntakeError()

    logger.info(
        "Diagnosis submitted diagnosis=%s category=%s images=%d authenticated=%s",
        diagnosis_id, submission.category, len(images), isinstance(identity, Authenticated),
    )
    return diagnosis_id
