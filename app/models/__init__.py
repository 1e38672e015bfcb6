from app.models.vehicle import Vehicle
from app.models.diagnosis import Diagnosis, DiagnosisStatus
from app.models.diagnosis_image import DiagnosisImage
from app.models.user import User, UserSession

__all__ = ["Vehicle", "Diagnosis", "DiagnosisStatus", "DiagnosisImage", "User", "UserSession"]
