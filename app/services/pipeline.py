# app/services/pipeline.py
"""The single way a photo comes into existence.

``create_photo`` is shared by the upload endpoint, the intake watcher and
the bulk folder import: brand, store the three variants, persist the row,
then hand the original to the archiver without waiting for it.
"""
import logging
import time

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import EventNotFound, PhotoNotFound, PipelineTimeout, StorageNotFound
from app.models import Event, GlobalSettings, Photo
from app.services.branding import fetch_asset, resolve_branding
from app.services.compositor import read_metadata, render_variants
from app.services.storage import StorageBackend, generate_filename, variant_keys

logger = logging.getLogger("pipeline")


def load_global_settings(db: Session) -> GlobalSettings:
    row = db.execute(select(GlobalSettings).order_by(GlobalSettings.id).limit(1)).scalar_one_or_none()
    if row is None:
        return GlobalSettings(jpeg_quality=80, thumb_quality=60)
    return row


def check_deadline(deadline: float | None, stage: str) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise PipelineTimeout(stage)


def render_for_event(original: bytes, event: Event, defaults: GlobalSettings, is_portrait: bool,
                     public_root: str, fetch_timeout: float):
    assets = resolve_branding(event.template, defaults, is_portrait)
    frame = fetch_asset(assets.frame, public_root, fetch_timeout)
    watermark = fetch_asset(assets.watermark, public_root, fetch_timeout)
    return render_variants(
        original,
        frame=frame,
        watermark=watermark,
        preview_quality=defaults.jpeg_quality if defaults.jpeg_quality is not None else 80,
        thumb_quality=defaults.thumb_quality if defaults.thumb_quality is not None else 60,
    )


def create_photo(
    db: Session,
    data: bytes,
    filename: str,
    event_id: str,
    moment_id: str | None = None,
    *,
    storage: StorageBackend,
    archiver=None,
    collection: str = settings.PHOTO_COLLECTION,
    public_root: str = settings.PUBLIC_ROOT,
    fetch_timeout: float = settings.ASSET_FETCH_TIMEOUT,
    deadline: float | None = None,
) -> Photo:
    stored_name = generate_filename(filename)
    logger.info(f"Processing {filename} as {stored_name} for event {event_id}")

    event = db.get(Event, event_id)
    if event is None:
        raise EventNotFound(event_id)

    meta = read_metadata(data)
    defaults = load_global_settings(db)

    check_deadline(deadline, "compositing")
    variants = render_for_event(data, event, defaults, meta.is_portrait, public_root, fetch_timeout)

    original_key, preview_key, thumb_key = variant_keys(stored_name)
    check_deadline(deadline, "storage")
    storage.put(collection, original_key, data, meta.mime_type)
    storage.put(collection, preview_key, variants.preview, variants.preview_content_type)
    storage.put(collection, thumb_key, variants.thumbnail, "image/jpeg")

    check_deadline(deadline, "persisting")
    photo = Photo(
        event_id=event.id,
        moment_id=moment_id if moment_id and moment_id != "all" else None,
        original_key=original_key,
        watermarked_key=preview_key,
        thumbnail_key=thumb_key,
        width=variants.width,
        height=variants.height,
        file_size=variants.size,
        mime_type=meta.mime_type,
    )
    try:
        db.add(photo)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error(f"Could not save photo record for {stored_name}; stored variants are left behind")
        raise
    db.refresh(photo)
    logger.info(f"Photo {photo.id} created ({variants.width}x{variants.height}, branded={variants.branded})")

    if archiver is not None:
        archiver.schedule(photo.id, data, filename, event.slug, meta.mime_type)
    return photo


def find_event_by_slug(db: Session, slug: str) -> Event | None:
    return db.execute(select(Event).where(Event.slug == slug)).scalar_one_or_none()


def delete_photo(db: Session, photo_id: str, *, storage: StorageBackend, archiver=None,
                 collection: str = settings.PHOTO_COLLECTION) -> None:
    photo = db.get(Photo, photo_id)
    if photo is None:
        raise PhotoNotFound(photo_id)

    if photo.archive_ref and archiver is not None:
        logger.info(f"Deleting archived copy {photo.archive_ref}")
        archiver.discard(photo.archive_ref)

    keys = [photo.original_key, photo.watermarked_key, photo.thumbnail_key]
    db.delete(photo)
    db.commit()

    for key in keys:
        try:
            storage.delete(collection, key)
        except StorageNotFound:
            logger.warning(f"Stored object {key} was already gone")
        except Exception as e:
            logger.warning(f"Failed to delete stored object {key}: {e}")
