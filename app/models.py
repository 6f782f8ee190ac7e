import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class BrandingTemplate(Base):
    __tablename__ = "branding_templates"
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255))
    frame_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    watermark_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    frame_portrait_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    watermark_portrait_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    events: Mapped[list["Event"]] = relationship(back_populates="template")


class Event(Base):
    __tablename__ = "events"
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    slug: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    short_hash: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True)
    template_id: Mapped[str | None] = mapped_column(ForeignKey("branding_templates.id"), nullable=True)
    primary_color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    secondary_color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    template: Mapped[BrandingTemplate | None] = relationship(back_populates="events", lazy="joined")


class GlobalSettings(Base):
    """Deployment-wide branding defaults and encoder qualities (single row)."""

    __tablename__ = "global_settings"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    frame_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    watermark_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    frame_portrait_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    watermark_portrait_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    jpeg_quality: Mapped[int] = mapped_column(Integer, default=80)
    thumb_quality: Mapped[int] = mapped_column(Integer, default=60)


class Photo(Base):
    __tablename__ = "photos"
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    event_id: Mapped[str] = mapped_column(ForeignKey("events.id"), index=True)
    moment_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    original_key: Mapped[str] = mapped_column(String(1024))
    watermarked_key: Mapped[str] = mapped_column(String(1024))
    thumbnail_key: Mapped[str] = mapped_column(String(1024))
    width: Mapped[int] = mapped_column(Integer)
    height: Mapped[int] = mapped_column(Integer)
    file_size: Mapped[int] = mapped_column(Integer)
    mime_type: Mapped[str] = mapped_column(String(64))
    archive_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    download_count: Mapped[int] = mapped_column(Integer, default=0)
    share_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    event: Mapped[Event] = relationship()
