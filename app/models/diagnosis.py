from enum import Enum

from sqlalchemy import Column, String, Integer, Float, Boolean, Text, JSON, ForeignKey

from app.database import Base


class DiagnosisStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[DiagnosisStatus, set[DiagnosisStatus]] = {
    DiagnosisStatus.PENDING: {DiagnosisStatus.PROCESSING},
    DiagnosisStatus.PROCESSING: {DiagnosisStatus.COMPLETED, DiagnosisStatus.FAILED},
    DiagnosisStatus.COMPLETED: set(),
    DiagnosisStatus.FAILED: set(),
}

TERMINAL_STATUSES = frozenset({DiagnosisStatus.COMPLETED, DiagnosisStatus.FAILED})

# Written together when a diagnosis completes, never individually.
ANALYSIS_FIELDS = (
    "ai_provider",
    "identified_issue",
    "confidence_score",
    "explanation",
    "diy_steps",
    "safety_warnings",
    "estimated_cost_min",
    "estimated_cost_max",
    "urgency_level",
    "safe_to_drive",
    "processing_time_seconds",
)


class IllegalTransitionError(ValueError):
    pass


def ensure_transition(current: str, target: DiagnosisStatus) -> None:
    current_status = DiagnosisStatus(current)
    if target not in ALLOWED_TRANSITIONS[current_status]:
        raise IllegalTransitionError(
            f"Invalid status transition: {current_status.value} -> {target.value}"
        )


class Diagnosis(Base):
    __tablename__ = "diagnoses"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    session_id = Column(String, nullable=False, index=True)
    vehicle_id = Column(String, ForeignKey("vehicles.id"), nullable=True)
    category = Column(String, nullable=False, index=True)
    user_description = Column(Text, nullable=False)
    voice_note_url = Column(String(500), nullable=True)
    status = Column(String, nullable=False, default=DiagnosisStatus.PENDING.value)

    ai_provider = Column(String, nullable=True)
    identified_issue = Column(String, nullable=True)
    confidence_score = Column(Integer, nullable=True)  # 0-100
    explanation = Column(Text, nullable=True)
    diy_steps = Column(JSON, nullable=True)
    safety_warnings = Column(Text, nullable=True)
    estimated_cost_min = Column(Float, nullable=True)
    estimated_cost_max = Column(Float, nullable=True)
    urgency_level = Column(String, nullable=True)  # low, medium, critical
    safe_to_drive = Column(Boolean, nullable=True)
    processing_time_seconds = Column(Float, nullable=True)

    created_at = Column(String, nullable=False, index=True)
    updated_at = Column(String, nullable=False)
