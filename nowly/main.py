import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CORS_ORIGINS, LOG_FILE, LOG_LEVEL
from .database import create_tables
from .logging_setup import setup_logging
from .routers import auth, categories, recurring, tasks

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Nowly API",
    description="Personal task manager with ordered day lists and recurring tasks",
    version="1.0.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["tasks"])
app.include_router(categories.router, prefix="/api/categories", tags=["categories"])
app.include_router(recurring.router, prefix="/api/recurring", tags=["recurring"])


# Create tables on startup
@app.on_event("startup")
def on_startup():
    setup_logging(level=LOG_LEVEL, log_file=LOG_FILE)
    create_tables()
    logger.info("Nowly API started")


@app.get("/")
def read_root():
    return {"message": "Nowly API"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}
