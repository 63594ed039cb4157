import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from voicepanel.api.v1 import api_router
from voicepanel.core.config import settings
from voicepanel.services.progress import InMemoryProgressStore
from voicepanel.services.run_supervisor import RunSupervisor
from voicepanel.synthetic.ai_respondent import AIRespondent

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One progress channel, supervisor and provider client per application instance
    app.state.progress_store = InMemoryProgressStore()
    app.state.run_supervisor = RunSupervisor()
    app.state.respondent = AIRespondent()
    logger.info(f"{settings.APP_NAME} started (model: {app.state.respondent.model})")
    yield
    await app.state.run_supervisor.shutdown()


app = FastAPI(
    title="Voice Panel API",
    description="Synthetic panel test execution and aggregation",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": "Voice Panel API", "version": "1.0.0"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
