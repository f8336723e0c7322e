"""
User Database Model

Minimal user directory: identity only. Credentials live with the auth service.
"""

from sqlmodel import Field

from walletwise.infrastructure.db.models.base import BaseModel


class UserModel(BaseModel, table=True):
    """Maps to the 'users' table."""

    __tablename__ = "users"

    email: str = Field(max_length=255, unique=True, index=True, nullable=False)
