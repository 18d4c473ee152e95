"""
SQLAlchemy models for the Context API: one row per issued launch id.
"""
import json
from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class LaunchContext(Base):
    __tablename__ = "launch_contexts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    launch_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(64), nullable=False)
    # FHIR resource JSON returned as parameter[0].resource
    resource_json: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def get_resource(self) -> dict:
        return json.loads(self.resource_json)

    def expired(self) -> bool:
        return self.expires_at.replace(tzinfo=timezone.utc) < datetime.now(timezone.utc)
