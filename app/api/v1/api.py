from fastapi import APIRouter

from app.api.v1.endpoints import users, deletion_requests, assets, audit_logs

api_router = APIRouter()

# Include user-related endpoints
api_router.include_router(
    users.router, prefix="/auth", tags=["authentication"])

# Include deletion request workflow endpoints
api_router.include_router(
    deletion_requests.router, prefix="/deletion-requests", tags=["deletion-requests"])

# Include asset deletion endpoints
api_router.include_router(
    assets.router, prefix="/assets", tags=["assets"])

# Include audit log endpoints
api_router.include_router(
    audit_logs.router, prefix="/audit-logs", tags=["audit-logs"])
