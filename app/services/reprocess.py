# app/services/reprocess.py
import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import CompositeFailed, DecodeFailed, EventNotFound, PhotoNotFound, SourceUnavailable
from app.models import Event, Photo
from app.services.compositor import read_metadata
from app.services.pipeline import check_deadline, load_global_settings, render_for_event
from app.services.storage import StorageBackend

logger = logging.getLogger("reprocess")


@dataclass
class ReprocessSummary:
    photo_ids: list[str]
    success: int = 0
    failed: int = 0
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.photo_ids)


def reprocess_photo(
    db: Session,
    photo_id: str,
    *,
    storage: StorageBackend,
    collection: str = settings.PHOTO_COLLECTION,
    public_root: str = settings.PUBLIC_ROOT,
    fetch_timeout: float = settings.ASSET_FETCH_TIMEOUT,
    deadline: float | None = None,
) -> Photo:
    """Re-brand one photo with the current template and global settings.

    The preview and thumbnail are overwritten under their existing keys; the
    original and the photo row are left as they are.
    """
    photo = db.get(Photo, photo_id)
    if photo is None:
        raise PhotoNotFound(photo_id)
    event = db.get(Event, photo.event_id)
    if event is None:
        raise EventNotFound(photo.event_id)

    try:
        original = storage.get(collection, photo.original_key)
    except Exception as e:
        # Any failed read of the original, whatever the backend raised
        raise SourceUnavailable(photo_id, photo.original_key) from e

    check_deadline(deadline, "compositing")
    try:
        meta = read_metadata(original)
        variants = render_for_event(
            original, event, load_global_settings(db), meta.is_portrait, public_root, fetch_timeout
        )
    except DecodeFailed as e:
        raise CompositeFailed(photo_id, e.reason) from e

    check_deadline(deadline, "storage")
    storage.put(collection, photo.watermarked_key, variants.preview, variants.preview_content_type)
    storage.put(collection, photo.thumbnail_key, variants.thumbnail, "image/jpeg")
    logger.info(f"Reprocessed photo {photo_id} (branded={variants.branded})")
    return photo


def list_reprocess_targets(db: Session, event_id: str) -> list[str]:
    if db.get(Event, event_id) is None:
        raise EventNotFound(event_id)
    rows = db.execute(
        select(Photo.id).where(Photo.event_id == event_id).order_by(Photo.created_at, Photo.id)
    ).scalars()
    return list(rows)


def reprocess_event(db: Session, event_id: str, *, storage: StorageBackend, **options) -> ReprocessSummary:
    # One photo at a time: each decode holds a full-size image in memory
    summary = ReprocessSummary(photo_ids=list_reprocess_targets(db, event_id))
    logger.info(f"Starting branding update for {summary.total} photos in event {event_id}")

    for photo_id in summary.photo_ids:
        try:
            reprocess_photo(db, photo_id, storage=storage, **options)
            summary.success += 1
        except Exception as e:
            logger.error(f"Failed to reprocess photo {photo_id}: {e}")
            summary.failures[photo_id] = str(e)
            summary.failed += 1

    logger.info(f"Branding updated for {summary.success} photos. {summary.failed} failed.")
    return summary
