from datetime import date
from typing import Literal

from pydantic import AnyHttpUrl, BaseModel, Field, TypeAdapter, field_validator, model_validator

_HTTP_URL = TypeAdapter(AnyHttpUrl)

Category = Literal["engine", "brakes", "electrical", "transmission", "tires", "other"]

CATEGORIES: list[dict[str, str]] = [
    {"value": "engine", "label": "Engine Issues",
     "description": "Strange noises, check engine light, poor performance"},
    {"value": "brakes", "label": "Brake Problems",
     "description": "Squeaking, grinding, soft pedal, pulling"},
    {"value": "electrical", "label": "Electrical Faults",
     "description": "Battery, alternator, lights, starter issues"},
    {"value": "transmission", "label": "Transmission Issues",
     "description": "Shifting problems, slipping, leaking fluid"},
    {"value": "tires", "label": "Tire & Wheel Problems",
     "description": "Uneven wear, vibration, alignment issues"},
    {"value": "other", "label": "Not Sure / Other",
     "description": "General issues or unsure about the problem"},
]


class VehicleInfo(BaseModel):
    make: str = Field(min_length=1, max_length=100)
    model: str = Field(min_length=1, max_length=100)
    year: int | None = None
    mileage: int | None = Field(default=None, ge=0, le=999999)

    @field_validator("year")
    @classmethod
    def _year_in_range(cls, value: int | None) -> int | None:
        if value is not None and not 1900 <= value <= date.today().year + 2:
            raise ValueError("Please enter a valid vehicle year.")
        return value


class DiagnosisCreate(BaseModel):
    category: Category
    description: str = Field(max_length=500)
    vehicle_id: str | None = None
    vehicle: VehicleInfo | None = None
    voice_note_url: str | None = Field(default=None, max_length=500)

    @field_validator("description")
    @classmethod
    def _description_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Please describe your vehicle issue.")
        return value

    @field_validator("voice_note_url")
    @classmethod
    def _voice_note_is_url(cls, value: str | None) -> str | None:
        if value is None:
            return value
        try:
            _HTTP_URL.validate_python(value)
        except ValueError:
            raise ValueError("Invalid voice note URL.") from None
        return value

    @model_validator(mode="before")
    @classmethod
    def _collect_vehicle(cls, data):
        """Accept flat form fields (vehicle_make, vehicle_model, ...) as well as a nested vehicle."""
        if not isinstance(data, dict) or data.get("vehicle") is not None:
            return data
        flat = {
            key: data.get(field)
            for key, field in (("make", "vehicle_make"), ("model", "vehicle_model"),
                               ("year", "vehicle_year"), ("mileage", "mileage"))
            if data.get(field) not in (None, "")
        }
        # a year or mileage without make and model is reported, not dropped
        if flat:
            data = {**data, "vehicle": flat}
        return data


class DiagnosisImageResponse(BaseModel):
    id: str
    image_url: str
    file_size: int
    mime_type: str
    order_index: int

    model_config = {"from_attributes": True}


class DiagnosisResponse(BaseModel):
    id: str
    user_id: str | None = None
    vehicle_id: str | None = None
    category: str
    user_description: str
    voice_note_url: str | None = None
    status: str
    ai_provider: str | None = None
    identified_issue: str | None = None
    confidence_score: int | None = None
    explanation: str | None = None
    diy_steps: list[str] | None = None
    safety_warnings: str | None = None
    estimated_cost_min: float | None = None
    estimated_cost_max: float | None = None
    urgency_level: str | None = None
    safe_to_drive: bool | None = None
    processing_time_seconds: float | None = None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}
