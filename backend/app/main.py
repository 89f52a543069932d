import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config.settings import cors_origins, load_environment

# Load environment variables from backend/.env before importing routes
load_environment()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

from app.api.routes import live, quiz
from app.services.quiz_service import get_quiz_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_quiz_service().shutdown()


app = FastAPI(title="Exam Prep Quiz", version="1.0.0", lifespan=lifespan)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),  # React dev servers by default
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(quiz.router, prefix="/api/quiz", tags=["quiz"])
app.include_router(live.router, prefix="/api/live", tags=["live"])


@app.get("/")
def root():
    return {"message": "Exam Prep Quiz API"}


@app.get("/health")
def health():
    return {"status": "healthy"}
