from fastapi import APIRouter, Depends, File, Form, UploadFile

from app.database import async_session
from app.schemas.diagnosis import CATEGORIES, DiagnosisImageResponse, DiagnosisResponse
from app.schemas.vehicle import VehicleResponse
from app.services.identity import Identity, resolve_identity
from app.services.intake import submit_diagnosis
from app.services.lifecycle import DiagnosisView, view_diagnosis
from app.services.providers import AnalysisProvider, get_analysis_provider
from app.services.storage import get_blob_store
from app.utils.response import success_response

router = APIRouter(prefix="/diagnoses", tags=["diagnoses"])


def _view_data(view: DiagnosisView) -> dict:
    data = DiagnosisResponse.model_validate(view.diagnosis).model_dump()
    data["vehicle"] = VehicleResponse.model_validate(view.vehicle).model_dump() if view.vehicle else None
    data["images"] = [DiagnosisImageResponse.model_validate(i).model_dump() for i in view.images]
    return data


@router.get("/categories")
async def list_categories():
    return success_response(data=CATEGORIES)


@router.post("", status_code=201)
async def create_diagnosis(
    category: str | None = Form(None),
    description: str | None = Form(None),
    vehicle_id: str | None = Form(None),
    vehicle_make: str | None = Form(None),
    vehicle_model: str | None = Form(None),
    vehicle_year: str | None = Form(None),
    mileage: str | None = Form(None),
    voice_note_url: str | None = Form(None),
    images: list[UploadFile] | None = File(None),
    identity: Identity = Depends(resolve_identity),
    blob_store=Depends(get_blob_store),
):
    fields = {
        "category": category,
        "description": description,
        "vehicle_id": vehicle_id,
        "vehicle_make": vehicle_make,
        "vehicle_model": vehicle_model,
        "vehicle_year": vehicle_year,
        "mileage": mileage,
        "voice_note_url": voice_note_url,
    }
    data = {k: v for k, v in fields.items() if v not in (None, "")}

    diagnosis_id = await submit_diagnosis(async_session, data, images, identity, blob_store)
    return success_response(
        data={"id": diagnosis_id, "status": "pending"},
        message="Diagnosis submitted successfully! Analyzing your issue...",
    )


@router.get("/{diagnosis_id}")
async def get_diagnosis(
    diagnosis_id: str,
    identity: Identity = Depends(resolve_identity),
    provider: AnalysisProvider = Depends(get_analysis_provider),
):
    view = await view_diagnosis(async_session, diagnosis_id, identity, provider)
    return success_response(data=_view_data(view))
