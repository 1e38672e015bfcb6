"""Analysis providers: the contract plus the configured backends."""
import base64
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Literal

import pydantic
from pydantic import BaseModel, Field, model_validator

from app.config import settings
from app.services.storage import get_blob_store

logger = logging.getLogger(__name__)


class AnalysisProviderError(Exception):
    """The provider could not produce a usable diagnosis."""


@dataclass
class ImageReference:
    url: str
    path: str
    mime_type: str
    order_index: int


@dataclass
class DiagnosisPayload:
    diagnosis_id: str
    category: str
    description: str
    vehicle: dict | None = None
    images: list[ImageReference] = field(default_factory=list)


class AnalysisResult(BaseModel):
    identified_issue: str = Field(min_length=1)
    confidence_score: int = Field(ge=0, le=100)
    explanation: str
    diy_steps: list[str] = []
    safety_warnings: str = ""
    estimated_cost_min: float = Field(ge=0)
    estimated_cost_max: float = Field(ge=0)
    urgency_level: Literal["low", "medium", "critical"]
    safe_to_drive: bool

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            if data.get("safety_warnings") is None:
                data["safety_warnings"] = ""
            if data.get("diy_steps") is None:
                data["diy_steps"] = []
        return data

    @model_validator(mode="after")
    def _cost_range(self):
        if self.estimated_cost_min > self.estimated_cost_max:
            raise ValueError("Minimum cost cannot be greater than maximum cost")
        return self


class AnalysisProvider(ABC):
    name: str

    @abstractmethod
    async def diagnose(self, payload: DiagnosisPayload) -> AnalysisResult:
        """Return a diagnosis for the payload or raise AnalysisProviderError."""


DIAGNOSIS_PROMPT = """\
You are an expert automotive diagnostic assistant with decades of mechanical experience. \
A driver needs help diagnosing their vehicle issue.

VEHICLE INFORMATION:
- Make: {make}
- Model: {model}
- Year: {year}
- Mileage: {mileage}
- Issue Category: {category}

DRIVER'S DESCRIPTION:
{description}

INSTRUCTIONS:
1. Analyze the symptoms (and any attached photos) and identify the most likely issue
2. Provide a confidence score (0-100) based on the information available
3. Explain the issue in simple, non-technical terms
4. If safe, provide step-by-step DIY troubleshooting instructions
5. Highlight any safety concerns that require immediate attention
6. Estimate repair costs (parts + labor) based on typical market rates
7. Determine urgency level: low (can wait), medium (fix soon), critical (stop driving immediately)
8. Indicate if it is safe to continue driving

Respond ONLY with a JSON object (no markdown, no additional text):
{{
  "identified_issue": "Brief name of the most likely issue",
  "confidence_score": 85,
  "explanation": "Clear, simple explanation",
  "diy_steps": ["Step 1: ...", "Step 2: ..."],
  "safety_warnings": "Immediate safety concerns, or null",
  "estimated_cost_min": 300,
  "estimated_cost_max": 600,
  "urgency_level": "medium",
  "safe_to_drive": true
}}
"""


def build_prompt(payload: DiagnosisPayload) -> str:
    vehicle = payload.vehicle or {}
    mileage = vehicle.get("mileage")
    return DIAGNOSIS_PROMPT.format(
        make=vehicle.get("make") or "Unknown",
        model=vehicle.get("model") or "Unknown",
        year=vehicle.get("year") or "Unknown",
        mileage=f"{mileage:,} miles" if mileage is not None else "Unknown",
        category=payload.category,
        description=payload.description,
    )


def parse_result(raw_text: str) -> AnalysisResult:
    """Parse a JSON answer (optionally in a markdown code block) into an AnalysisResult."""
    json_text = raw_text.strip()
    if json_text.startswith("```"):
        lines = json_text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        json_text = "\n".join(lines)

    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise AnalysisProviderError(f"Response is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise AnalysisProviderError("Response is not a JSON object")

    try:
        return AnalysisResult.model_validate(parsed)
    except pydantic.ValidationError as e:
        raise AnalysisProviderError(f"Response failed validation: {e}") from e


class OpenAICompatibleProvider(AnalysisProvider):
    """Chat-completions backend reached through the openai SDK."""

    def __init__(
        self,
        name: str,
        api_key: str,
        model: str,
        base_url: str = "",
        supports_vision: bool = True,
        blob_reader=None,
    ):
        self.name = name
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.supports_vision = supports_vision
        self.blob_reader = blob_reader

    def _image_content(self, payload: DiagnosisPayload) -> list[dict]:
        if not self.supports_vision or self.blob_reader is None:
            return []
        content = []
        for image in sorted(payload.images, key=lambda i: i.order_index):
            data = self.blob_reader(image.path)
            if data is None:
                continue
            b64 = base64.b64encode(data).decode("utf-8")
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{image.mime_type};base64,{b64}", "detail": "high"},
            })
        return content

    def _build_api_kwargs(self, content: list[dict] | str) -> dict:
        api_kwargs: dict = {
            "model": self.model,
            "messages": [
                {
                    "role": "system",
                    "content": "You are an expert automotive diagnostic assistant. "
                               "Always respond with valid JSON only.",
                },
                {"role": "user", "content": content},
            ],
        }
        if self.model.startswith("o"):
            # o-series reasoning models take no temperature
            api_kwargs["max_completion_tokens"] = 4096
        else:
            api_kwargs["max_tokens"] = 1500
            api_kwargs["temperature"] = 0.3
        return api_kwargs

    async def diagnose(self, payload: DiagnosisPayload) -> AnalysisResult:
        if not self.api_key:
            raise AnalysisProviderError(f"No API key configured for provider {self.name}")

        from openai import AsyncOpenAI, OpenAIError

        kwargs: dict = {"api_key": self.api_key, "max_retries": 0, "timeout": settings.ai_timeout_seconds}
        if self.base_url:
            kwargs["base_url"] = self.base_url
        prompt = build_prompt(payload)
        images = self._image_content(payload)
        # text-only backends get a plain string message
        content = [{"type": "text", "text": prompt}, *images] if images else prompt
        logger.info(
            "Calling %s model=%s for diagnosis=%s with %d images",
            self.name, self.model, payload.diagnosis_id, len(images),
        )

        try:
            async with AsyncOpenAI(**kwargs) as client:
                response = await client.chat.completions.create(**self._build_api_kwargs(content))
        except OpenAIError as e:
            raise AnalysisProviderError(f"{self.name} request failed: {e}") from e

        if not response.choices:
            raise AnalysisProviderError(f"{self.name} returned no choices")
        raw_text = response.choices[0].message.content or ""
        logger.info("%s raw response for diagnosis=%s (%d chars)", self.name, payload.diagnosis_id, len(raw_text))
        return parse_result(raw_text)


def get_analysis_provider() -> AnalysisProvider:
    """The single provider selected by ``settings.ai_provider``."""
    blob_reader = get_blob_store().read
    if settings.ai_provider == "openai":
        return OpenAICompatibleProvider(
            name="openai",
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            supports_vision=True,
            blob_reader=blob_reader,
        )
    if settings.ai_provider == "groq":
        return OpenAICompatibleProvider(
            name="groq",
            api_key=settings.groq_api_key,
            model=settings.groq_model,
            base_url=settings.groq_base_url,
            supports_vision=False,
        )
    raise ValueError(f"Unknown AI provider: {settings.ai_provider}")
