from pydantic import BaseModel


class VehicleResponse(BaseModel):
    id: str
    make: str
    model: str
    year: int | None = None
    mileage: int | None = None
    vin: str | None = None
    fuel_type: str | None = None
    transmission_type: str | None = None

    model_config = {"from_attributes": True}
