from fastapi import APIRouter
from voicepanel.api.v1.runs import router as runs_router
from voicepanel.api.v1.personas import router as personas_router

api_router = APIRouter()

# Include panel routes
api_router.include_router(runs_router, prefix="/runs", tags=["runs"])
api_router.include_router(personas_router, prefix="/personas", tags=["personas"])
