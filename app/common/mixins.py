"""
Common mixins for multi-tenant models
"""
from sqlalchemy import Column, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import declared_attr
from sqlalchemy.sql import func


class BusinessMixin:
    """Mixin for business-owned models: every row belongs to exactly one business"""

    @declared_attr
    def business_id(cls):
        return Column(
            Uuid(as_uuid=True),
            ForeignKey("businesses.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
