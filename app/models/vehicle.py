from sqlalchemy import Column, String, Integer, ForeignKey

from app.database import Base


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=True)
    mileage = Column(Integer, nullable=True)
    vin = Column(String(17), nullable=True)
    fuel_type = Column(String, nullable=True)  # gasoline, diesel, electric, hybrid, other
    transmission_type = Column(String, nullable=True)  # automatic, manual
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
