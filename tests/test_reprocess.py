"""
tests/test_reprocess.py
=======================
Tests for app/services/reprocess.py: single-photo re-branding and the
sequential per-event loop.
"""

from __future__ import annotations

import os
import time
from unittest.mock import MagicMock

import pytest
from azure.core.exceptions import ServiceRequestError

from app.errors import CompositeFailed, EventNotFound, PhotoNotFound, SourceUnavailable
from app.models import Event, GlobalSettings
from app.services.pipeline import create_photo
from app.services.reprocess import list_reprocess_targets, reprocess_event, reprocess_photo
from app.services.storage import LocalStorage
from tests.helpers import COLLECTION, make_image, make_overlay


@pytest.fixture
def watermark_ref(public_root) -> str:
    path = os.path.join(public_root, "templates", "wm.png")
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(make_overlay(20, 20, (0, 255, 0)))
    return "/templates/wm.png"


def ingest(db, event, storage, options, width=120, height=80, name="a.jpg"):
    return create_photo(db, make_image(width, height), name, event.id, storage=storage, **options)


class TestReprocessPhoto:
    def test_applies_new_branding_in_place(self, db, event, storage, pipeline_options, watermark_ref) -> None:
        photo = ingest(db, event, storage, pipeline_options)
        original = storage.get(COLLECTION, photo.original_key)
        old_thumb = storage.get(COLLECTION, photo.thumbnail_key)
        assert storage.get(COLLECTION, photo.watermarked_key) == original

        db.add(GlobalSettings(id=1, watermark_url=watermark_ref, thumb_quality=30))
        db.commit()
        keys = (photo.original_key, photo.watermarked_key, photo.thumbnail_key)

        reprocess_photo(db, photo.id, storage=storage, **pipeline_options)

        db.refresh(photo)
        assert (photo.original_key, photo.watermarked_key, photo.thumbnail_key) == keys
        assert storage.get(COLLECTION, photo.original_key) == original
        assert storage.get(COLLECTION, photo.watermarked_key) != original
        assert storage.get(COLLECTION, photo.thumbnail_key) != old_thumb

    def test_twice_is_byte_identical(self, db, event, storage, pipeline_options, watermark_ref) -> None:
        db.add(GlobalSettings(id=1, watermark_url=watermark_ref))
        db.commit()
        photo = ingest(db, event, storage, pipeline_options)

        reprocess_photo(db, photo.id, storage=storage, **pipeline_options)
        first = (storage.get(COLLECTION, photo.watermarked_key), storage.get(COLLECTION, photo.thumbnail_key))
        reprocess_photo(db, photo.id, storage=storage, **pipeline_options)
        second = (storage.get(COLLECTION, photo.watermarked_key), storage.get(COLLECTION, photo.thumbnail_key))

        assert first == second

    def test_unknown_photo(self, db, storage, pipeline_options) -> None:
        with pytest.raises(PhotoNotFound):
            reprocess_photo(db, "missing", storage=storage, **pipeline_options)

    def test_missing_original_is_source_unavailable(self, db, event, storage, pipeline_options) -> None:
        photo = ingest(db, event, storage, pipeline_options)
        storage.delete(COLLECTION, photo.original_key)
        with pytest.raises(SourceUnavailable) as exc_info:
            reprocess_photo(db, photo.id, storage=storage, **pipeline_options)
        assert exc_info.value.key == photo.original_key

    def test_unreachable_store_is_source_unavailable(self, db, event, storage, pipeline_options) -> None:
        photo = ingest(db, event, storage, pipeline_options)
        flaky = MagicMock(wraps=storage, spec=LocalStorage)
        flaky.get.side_effect = ServiceRequestError("connection reset")
        with pytest.raises(SourceUnavailable) as exc_info:
            reprocess_photo(db, photo.id, storage=flaky, **pipeline_options)
        assert exc_info.value.key == photo.original_key
        flaky.put.assert_not_called()

    def test_corrupt_original_is_composite_failed(self, db, event, storage, pipeline_options) -> None:
        photo = ingest(db, event, storage, pipeline_options)
        storage.put(COLLECTION, photo.original_key, b"bit rot", "image/jpeg")
        with pytest.raises(CompositeFailed):
            reprocess_photo(db, photo.id, storage=storage, **pipeline_options)


class TestReprocessEvent:
    def test_lists_only_the_events_photos(self, db, event, storage, pipeline_options) -> None:
        other = Event(name="Other", slug="other-event")
        db.add(other)
        db.commit()
        mine = {ingest(db, event, storage, pipeline_options).id for _ in range(3)}
        ingest(db, other, storage, pipeline_options)

        assert set(list_reprocess_targets(db, event.id)) == mine

    def test_unknown_event(self, db, storage) -> None:
        with pytest.raises(EventNotFound):
            list_reprocess_targets(db, "missing")
        with pytest.raises(EventNotFound):
            reprocess_event(db, "missing", storage=storage)

    def test_empty_event(self, db, event, storage, pipeline_options) -> None:
        summary = reprocess_event(db, event.id, storage=storage, **pipeline_options)
        assert (summary.total, summary.success, summary.failed) == (0, 0, 0)

    def test_spent_deadline_fails_every_item(self, db, event, storage, pipeline_options) -> None:
        for i in range(2):
            ingest(db, event, storage, pipeline_options, name=f"{i}.jpg")

        summary = reprocess_event(
            db, event.id, storage=storage, deadline=time.monotonic() - 1, **pipeline_options
        )

        assert (summary.total, summary.success, summary.failed) == (2, 0, 2)

    def test_one_missing_original_does_not_stop_the_rest(
        self, db, event, storage, pipeline_options, watermark_ref
    ) -> None:
        photos = [ingest(db, event, storage, pipeline_options, name=f"{i}.jpg") for i in range(3)]
        broken = photos[1]
        storage.delete(COLLECTION, broken.original_key)
        db.add(GlobalSettings(id=1, watermark_url=watermark_ref))
        db.commit()

        summary = reprocess_event(db, event.id, storage=storage, **pipeline_options)

        assert (summary.total, summary.success, summary.failed) == (3, 2, 1)
        assert set(summary.photo_ids) == {p.id for p in photos}
        assert list(summary.failures) == [broken.id]
        for photo in (photos[0], photos[2]):
            preview = storage.get(COLLECTION, photo.watermarked_key)
            assert preview != storage.get(COLLECTION, photo.original_key)
