from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from company_scout.api.routes import scout
from company_scout.config import settings
from company_scout.services import logger as log_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    log_service.log_event(event_type="app_started", message="Company Scout API started")
    yield


app = FastAPI(
    title="Company Scout",
    description="Company discovery and verification over web search and LLM scoring",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(scout.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "company-scout"}
