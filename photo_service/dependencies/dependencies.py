from fastapi import Request, Depends
from photo_service.settings import Settings
from photo_service.storage.dynamodb import DynamoDBService
from photo_service.storage.s3 import S3Service
from photo_service.image_service.upload import UploadOrchestrator
from photo_service.image_service.deletion import DeletionOrchestrator
from photo_service.image_service.urls import AccessUrlIssuer

def get_settings(request: Request) -> Settings:
    """Dependency provider for the application Settings"""
    return request.app.state.settings

def get_s3_service(request: Request) -> S3Service:
    """Dependency provider for S3Service"""
    return request.app.state.s3

def get_dynamodb_service(request: Request) -> DynamoDBService:
    """Dependency provider for DynamoDBService"""
    return request.app.state.db

def get_upload_orchestrator(
    s3: S3Service = Depends(get_s3_service),
    db: DynamoDBService = Depends(get_dynamodb_service),
    config: Settings = Depends(get_settings),
) -> UploadOrchestrator:
    return UploadOrchestrator(s3=s3, db=db, config=config)

def get_deletion_orchestrator(
    s3: S3Service = Depends(get_s3_service),
    db: DynamoDBService = Depends(get_dynamodb_service),
) -> DeletionOrchestrator:
    return DeletionOrchestrator(s3=s3, db=db)

def get_url_issuer(s3: S3Service = Depends(get_s3_service)) -> AccessUrlIssuer:
    return AccessUrlIssuer(s3)
