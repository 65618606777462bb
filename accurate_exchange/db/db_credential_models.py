"""
Accurate credential model.

Just the data structure - token refresh and host discovery live in services.
"""

from sqlalchemy import Column, Index, String, Text
from sqlalchemy.orm import relationship

from .db_base import TimestampMixin, UUIDMixin
from .db_config import Base


class AccurateCredential(Base, UUIDMixin, TimestampMixin):
    """An owner's connection to one Accurate database."""

    __tablename__ = "accurate_credentials"

    owner_id = Column(String(100), nullable=False, index=True)

    # Application identity used for request signing
    app_key = Column(String(255), nullable=False)
    signature_secret = Column(Text, nullable=False)

    # OAuth tokens
    api_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)

    # Resolved database host (plain host name) and session
    host = Column(String(255), nullable=False)
    session = Column(String(255), nullable=True)
    database_id = Column(String(64), nullable=True)

    jobs = relationship(
        "ImportJob",
        back_populates="credential",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_credential_owner_app", "owner_id", "app_key"),)

    def __repr__(self) -> str:
        return f"<AccurateCredential id={self.id} owner_id={self.owner_id} host={self.host}>"
