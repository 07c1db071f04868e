from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging

from photo_service.storage.dynamodb import DynamoDBService
from photo_service.storage.s3 import S3Service
from photo_service.settings import settings
from photo_service.routers.image_service import router as image_router
from photo_service.exceptions import add_exception_handlers

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("photo-service")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
        Async context manager for FastAPI application lifecycle events.
        Builds the S3 and DynamoDB services once and hands them to request
        handlers through app.state.
    """
    # Tests may preset their own Settings
    config = getattr(app.state, "settings", None) or settings
    app.state.settings = config
    app.state.s3 = S3Service(config)
    app.state.db = DynamoDBService(config)
    yield
    # Cleanup resources
    app.state.s3.close()
    app.state.db.close()

# Initialize App
app = FastAPI(
    title=settings.app_title,
    lifespan=lifespan,
    description="Photo upload and storage service",
    root_path = "/api/v1"
)

# Add exception handlers
add_exception_handlers(app)

# CORS - Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add the routers
app.include_router(image_router)

# Check Health
@app.get("/")
def read_root():
    """
        Default end point

    """
    return "Photo Service is running."

if __name__ == "__main__":
    uvicorn.run("photo_service.main:app", host="0.0.0.0", port=8000, reload=True)
