"""
SQLAlchemy models for the form server: principals (Airtable identities + tokens) and forms.
"""
import json
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Principal(Base):
    __tablename__ = "principals"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Cleared (None) when a refresh is rejected; the next login fills them again
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Epoch seconds; None when the provider did not report a lifetime
    access_expires_at: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    forms: Mapped[list["Form"]] = relationship("Form", back_populates="creator")

    def to_profile(self) -> dict:
        """Public profile. Never includes token fields."""
        return {
            "id": self.id,
            "externalId": self.external_id,
            "email": self.email,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class Form(Base):
    __tablename__ = "forms"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    creator_id: Mapped[int] = mapped_column(ForeignKey("principals.id"), nullable=False, index=True)
    base_id: Mapped[str] = mapped_column(String(64), nullable=False)
    table_id: Mapped[str] = mapped_column(String(64), nullable=False)
    # JSON array of questions, as validated by schema.FormSchema
    questions: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    creator: Mapped["Principal"] = relationship("Principal", back_populates="forms")

    def get_questions_list(self) -> list[dict]:
        return json.loads(self.questions)
