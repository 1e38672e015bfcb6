import logging

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from app.config import settings
from app.database import async_session
from app.main import app
from app.models import DiagnosisImage
from app.services.identity import Anonymous
from app.services.images import prepare_uploads
from app.services.intake import submit_diagnosis
from app.utils.exceptions import ValidationError

from conftest import JPEG_HEADER, PNG_HEADER, WEBP_HEADER, FakeUpload, MemoryBlobStore

A = JPEG_HEADER + b"A" * 6
B = PNG_HEADER + b"B" * 12
C = JPEG_HEADER + b"C" * 26
W = WEBP_HEADER + b"W" * 8


async def _images_for(diagnosis_id: str) -> list[DiagnosisImage]:
    async with async_session() as db:
        result = await db.execute(
            select(DiagnosisImage)
            .where(DiagnosisImage.diagnosis_id == diagnosis_id)
            .order_by(DiagnosisImage.order_index)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_order_index_follows_submission_not_write_completion():
    # A finishes last, B first
    blob_store = MemoryBlobStore(delays={A: 0.05, B: 0.0, C: 0.02})
    uploads = [
        FakeUpload("A.jpg", A, "image/jpeg"),
        FakeUpload("B.png", B, "image/png"),
        FakeUpload("C.jpg", C, "image/jpeg"),
    ]

    diagnosis_id = await submit_diagnosis(
        async_session,
        {"category": "other", "description": "Three photos of the dashboard"},
        uploads,
        Anonymous("image-order"),
        blob_store,
    )

    assert blob_store.completed == [B, C, A]
    images = await _images_for(diagnosis_id)
    assert [i.order_index for i in images] == [0, 1, 2]
    assert [i.file_size for i in images] == [10, 20, 30]
    assert [i.mime_type for i in images] == ["image/jpeg", "image/png", "image/jpeg"]
    assert images[1].image_path.startswith(f"diagnoses/{diagnosis_id}/")
    assert images[1].image_path.endswith(".png")
    assert len({i.image_path for i in images}) == 3


@pytest.mark.asyncio
async def test_unusable_uploads_are_skipped_and_positions_kept():
    uploads = [
        FakeUpload("first.jpg", A),
        None,
        FakeUpload("", B),
        FakeUpload("empty.jpg", b""),
        FakeUpload("last.webp", W, "image/webp"),
    ]

    prepared = await prepare_uploads(uploads)

    assert [(p.order_index, p.filename) for p in prepared] == [(0, "first.jpg"), (4, "last.webp")]


@pytest.mark.asyncio
async def test_unsupported_type_rejected():
    with pytest.raises(ValidationError) as exc_info:
        await prepare_uploads([FakeUpload("a.jpg", A), FakeUpload("doc.pdf", b"%PDF-1.7 report", "application/pdf")])

    assert list(exc_info.value.errors) == ["images.1"]


@pytest.mark.asyncio
async def test_oversized_and_too_many_images_rejected(monkeypatch):
    monkeypatch.setattr(settings, "max_image_size_bytes", 15)
    monkeypatch.setattr(settings, "max_images", 2)

    with pytest.raises(ValidationError) as exc_info:
        await prepare_uploads([FakeUpload("a.jpg", A), FakeUpload("b.jpg", B), FakeUpload("c.jpg", A)])

    errors = exc_info.value.errors
    assert "images" in errors
    assert "images.1" in errors
    assert "images.0" not in errors


@pytest.mark.asyncio
async def test_images_uploaded_over_http_are_stored_in_order():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/api/v1/diagnoses",
            data={"category": "engine", "description": "Smoke from the hood"},
            files=[
                ("images", ("A.jpg", A, "image/jpeg")),
                ("images", ("B.png", B, "image/png")),
                ("images", ("C.jpg", C, "image/jpeg")),
            ],
            headers={"X-Session-Token": "http-images"},
        )

    assert response.status_code == 201
    images = await _images_for(response.json()["data"]["id"])
    assert [i.file_size for i in images] == [10, 20, 30]
    assert all(i.image_url.startswith(settings.storage_url_prefix + "/diagnoses/") for i in images)


@pytest.mark.asyncio
async def test_type_is_detected_from_content_not_declared_type():
    with pytest.raises(ValidationError) as exc_info:
        await prepare_uploads([FakeUpload("x.jpg", b"%PDF-1.7 not an image", "image/jpeg")])
    assert list(exc_info.value.errors) == ["images.0"]

    prepared = await prepare_uploads([
        FakeUpload("photo.jpg", B, "image/jpeg"),
        FakeUpload("photo", W, "application/octet-stream"),
    ])

    assert [p.mime_type for p in prepared] == ["image/png", "image/webp"]
    assert [p.extension for p in prepared] == [".png", ".webp"]


@pytest.mark.asyncio
async def test_skipped_uploads_are_logged_with_diagnosis_id(caplog):
    caplog.set_level(logging.INFO, logger="app.services.images")

    await prepare_uploads([None, FakeUpload("empty.jpg", b"")], diagnosis_id="d-logged")

    skipped = [r.getMessage() for r in caplog.records if "Skipping" in r.getMessage()]
    assert len(skipped) == 2
    assert all("diagnosis=d-logged" in message for message in skipped)
