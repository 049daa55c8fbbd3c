from sqlmodel import SQLModel

# Import all models here to ensure they are registered with SQLModel
from app.models.user import User  # noqa
from app.models.asset import Asset, Category, Department  # noqa
from app.models.deletion_request import DeletionRequest  # noqa
from app.models.audit_log import AuditLog  # noqa
from app.db.immutability import register_immutability_listeners

register_immutability_listeners()

__all__ = ["SQLModel"]
