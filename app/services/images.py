"""Validate and store the images attached to a diagnosis."""
import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.diagnosis_image import DiagnosisImage
from app.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


def sniff_mime_type(data: bytes) -> str | None:
    """Image type from the leading bytes; the client-declared type is not trusted."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


@dataclass
class PreparedImage:
    order_index: int
    filename: str
    mime_type: str
    data: bytes

    @property
    def extension(self) -> str:
        return ALLOWED_MIME_TYPES.get(self.mime_type) or os.path.splitext(self.filename)[1].lower()


def _is_usable(upload) -> bool:
    return upload is not None and callable(getattr(upload, "read", None)) and bool(getattr(upload, "filename", None))


async def prepare_uploads(uploads, diagnosis_id: str | None = None) -> list[PreparedImage]:
    """Read uploads, keeping each one's position in the submission as its order index.

    Unusable handles are skipped. Raises ValidationError for too many images,
    unsupported types or oversized files.
    """
    prepared: list[PreparedImage] = []
    for position, upload in enumerate(uploads or []):
        if not _is_usable(upload):
            logger.info("Skipping unusable upload at position %d for diagnosis=%s", position, diagnosis_id)
            continue
        data = await upload.read()
        if not data:
            logger.info(
                "Skipping empty upload %r at position %d for diagnosis=%s", upload.filename, position, diagnosis_id,
            )
            continue
        mime_type = sniff_mime_type(data) or ""
        prepared.append(PreparedImage(position, upload.filename, mime_type, data))

    errors: dict[str, str] = {}
    if len(prepared) > settings.max_images:
        errors["images"] = f"You can upload a maximum of {settings.max_images} images."
    for image in prepared:
        field = f"images.{image.order_index}"
        if image.mime_type not in ALLOWED_MIME_TYPES:
            errors[field] = "Images must be in JPEG, JPG, PNG, or WebP format."
        elif len(image.data) > settings.max_image_size_bytes:
            errors[field] = f"Each image must be less than {settings.max_image_size_bytes // (1024 * 1024)}MB in size."
    if errors:
        raise ValidationError(errors)
    return prepared


async def attach_images(
    db: AsyncSession,
    diagnosis_id: str,
    images: list[PreparedImage],
    blob_store,
    written: list[str],
) -> list[DiagnosisImage]:
    """Store blobs concurrently and add one DiagnosisImage row per image.

    Each blob path is appended to ``written`` before its write starts, so the
    caller can discard it (even half-written) if the transaction rolls back.
    """
    paths = [f"diagnoses/{diagnosis_id}/{uuid.uuid4()}{image.extension}" for image in images]

    async def _store(path: str, image: PreparedImage) -> str:
        written.append(path)
        return await blob_store.put(path, image.data)

    results = await asyncio.gather(
        *(_store(path, image) for path, image in zip(paths, images)),
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result

    now = datetime.now(timezone.utc).isoformat()
    rows = []
    for image, path, url in zip(images, paths, results):
        row = DiagnosisImage(
            id=str(uuid.uuid4()),
            diagnosis_id=diagnosis_id,
            image_url=url,
            image_path=path,
            file_size=len(image.data),
            mime_type=image.mime_type,
            order_index=image.order_index,
            created_at=now,
        )
        db.add(row)
        rows.append(row)
    logger.info("Stored %d images for diagnosis=%s", len(rows), diagnosis_id)
    return rows
