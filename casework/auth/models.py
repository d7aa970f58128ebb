from enum import Enum
from sqlalchemy import Column, String, Boolean, Integer
from sqlalchemy import Enum as SAEnum
from casework.config import settings
from casework.database import Base
from casework.shared.models import AuditMixin


class UserRole(str, Enum):
    VIEWER = "viewer"
    EDITOR = "editor"
    ANALYST = "analyst"
    ADMIN = "admin"


class User(Base, AuditMixin):
    __tablename__ = "users"

    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    role = Column(SAEnum(UserRole), default=UserRole.VIEWER, nullable=False)
    is_active = Column(Boolean, default=True)

    # Independent verifier pool
    is_verifier = Column(Boolean, default=False, nullable=False)
    verifier_max_concurrent = Column(
        Integer, default=settings.DEFAULT_VERIFIER_MAX_CONCURRENT, nullable=False
    )
