from sqlalchemy import Column, String, Integer, ForeignKey, UniqueConstraint

from app.database import Base


class DiagnosisImage(Base):
    __tablename__ = "diagnosis_images"
    __table_args__ = (
        UniqueConstraint("diagnosis_id", "order_index", name="uq_diagnosis_images_order"),
    )

    id = Column(String, primary_key=True)
    diagnosis_id = Column(String, ForeignKey("diagnoses.id", ondelete="CASCADE"), nullable=False, index=True)
    image_url = Column(String(500), nullable=False)
    image_path = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(50), nullable=False)
    order_index = Column(Integer, nullable=False)
    created_at = Column(String, nullable=False)
