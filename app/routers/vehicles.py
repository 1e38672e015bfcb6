from fastapi import APIRouter, Depends
from sqlalchemy import select

from app.database import async_session
from app.models.vehicle import Vehicle
from app.schemas.vehicle import VehicleResponse
from app.services.identity import Authenticated, Identity, resolve_identity
from app.utils.response import success_response

router = APIRouter(prefix="/vehicles", tags=["vehicles"])


@router.get("")
async def get_vehicles(identity: Identity = Depends(resolve_identity)):
    """Vehicles saved by the logged-in caller; guests have none."""
    if not isinstance(identity, Authenticated):
        return success_response(data=[])

    async with async_session() as session:
        result = await session.execute(
            select(Vehicle).where(Vehicle.user_id == identity.user_id).order_by(Vehicle.created_at)
        )
        vehicles = result.scalars().all()
        data = [VehicleResponse.model_validate(v).model_dump() for v in vehicles]
    return success_response(data=data)
