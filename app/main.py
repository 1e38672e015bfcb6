import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.config import settings
from app.database import create_tables, async_session
from app.dependencies import verify_api_key
from app.seed import seed_data
from app.routers.auth import router as auth_router
from app.routers.diagnoses import router as diagnoses_router
from app.routers.vehicles import router as vehicles_router
from app.utils.exceptions import register_exception_handlers
from app.utils.response import success_response

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    async with async_session() as session:
        await seed_data(session)
    yield


app = FastAPI(
    title="Vehicle Diagnosis API",
    description="Vehicle problem reports with AI-assisted diagnosis",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Session-Token"],
)

register_exception_handlers(app)

_api_key_dep = [Depends(verify_api_key)]

app.include_router(auth_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(diagnoses_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(vehicles_router, prefix="/api/v1", dependencies=_api_key_dep)

os.makedirs(settings.storage_dir, exist_ok=True)
app.mount(settings.storage_url_prefix, StaticFiles(directory=settings.storage_dir), name="storage")


@app.get("/health")
async def health_check():
    return success_response(data={"service": "vehicle-diagnosis-api", "version": "0.1.0"})
