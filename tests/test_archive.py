"""
tests/test_archive.py
=====================
Unit tests for app/services/archive.py with a mocked Drive service.
"""

from __future__ import annotations

from unittest.mock import MagicMock

from app.config import ARCHIVE_ROOT_FOLDER, Settings
from app.models import Photo
from app.services.archive import FOLDER_MIME_TYPE, Archiver, DriveArchive
from tests.helpers import DeferredExecutor, ImmediateExecutor


def drive_service(list_result=None, create_result=None) -> MagicMock:
    service = MagicMock()
    files = service.files.return_value
    files.list.return_value.execute.return_value = list_result or {"files": []}
    files.create.return_value.execute.return_value = create_result or {"id": "new-id"}
    return service


def seed_photo(db, event) -> Photo:
    photo = Photo(
        event_id=event.id,
        original_key="originals/a.jpg",
        watermarked_key="previews/a.jpg",
        thumbnail_key="thumbnails/a.jpg",
        width=10,
        height=10,
        file_size=100,
        mime_type="image/jpeg",
    )
    db.add(photo)
    db.commit()
    return photo


class TestDriveArchive:
    def test_existing_folder_is_reused(self) -> None:
        service = drive_service(list_result={"files": [{"id": "existing", "name": "PIXER_ARCHIVE"}]})
        assert DriveArchive(service).get_or_create_folder("PIXER_ARCHIVE") == "existing"
        service.files.return_value.create.assert_not_called()

    def test_missing_folder_is_created_under_parent(self) -> None:
        service = drive_service(create_result={"id": "folder-2"})
        assert DriveArchive(service).get_or_create_folder("wedding-night-2026", "root-1") == "folder-2"

        query = service.files.return_value.list.call_args.kwargs["q"]
        assert "name = 'wedding-night-2026'" in query
        assert "'root-1' in parents" in query
        assert "trashed = false" in query
        body = service.files.return_value.create.call_args.kwargs["body"]
        assert body == {"name": "wedding-night-2026", "mimeType": FOLDER_MIME_TYPE, "parents": ["root-1"]}

    def test_folder_name_is_quoted(self) -> None:
        service = drive_service()
        DriveArchive(service).get_or_create_folder("o'brien-party")
        assert "name = 'o\\'brien-party'" in service.files.return_value.list.call_args.kwargs["q"]

    def test_upload_returns_file_id(self) -> None:
        service = drive_service(create_result={"id": "file-1"})
        assert DriveArchive(service).upload(b"jpeg", "IMG_1.jpg", "folder-2") == "file-1"
        kwargs = service.files.return_value.create.call_args.kwargs
        assert kwargs["body"] == {"name": "IMG_1.jpg", "parents": ["folder-2"]}
        assert kwargs["media_body"].mimetype() == "image/jpeg"

    def test_trash(self) -> None:
        service = drive_service()
        DriveArchive(service).trash("file-1")
        service.files.return_value.update.assert_called_once_with(fileId="file-1", body={"trashed": True})

    def test_not_configured_without_credentials(self) -> None:
        cfg = Settings(GOOGLE_CLIENT_ID=None, GOOGLE_CLIENT_SECRET=None, GOOGLE_REFRESH_TOKEN=None)
        assert DriveArchive.from_settings(cfg) is None


class TestArchiver:
    def test_sync_builds_folder_hierarchy_and_saves_reference(self, db, event, session_factory) -> None:
        photo = seed_photo(db, event)
        client = MagicMock()
        client.get_or_create_folder.side_effect = ["root-id", "event-id"]
        client.upload.return_value = "file-77"

        result = Archiver(client, session_factory, ImmediateExecutor()).sync(
            photo.id, b"bytes", "IMG_1.jpg", event.slug
        )

        assert result == "file-77"
        assert client.get_or_create_folder.call_args_list[0].args == (ARCHIVE_ROOT_FOLDER,)
        assert client.get_or_create_folder.call_args_list[1].args == (event.slug, "root-id")
        with session_factory() as fresh:
            assert fresh.get(Photo, photo.id).archive_ref == "file-77"

    def test_sync_failure_is_swallowed(self, db, event, session_factory, caplog) -> None:
        photo = seed_photo(db, event)
        client = MagicMock()
        client.upload.side_effect = ConnectionError("quota exceeded")

        assert Archiver(client, session_factory, ImmediateExecutor()).sync(photo.id, b"x", "a.jpg", event.slug) is None
        assert "Archive upload failed" in caplog.text
        with session_factory() as fresh:
            assert fresh.get(Photo, photo.id).archive_ref is None

    def test_schedule_is_detached(self, db, event, session_factory) -> None:
        photo = seed_photo(db, event)
        client = MagicMock()
        client.upload.return_value = "file-1"
        executor = DeferredExecutor()
        archiver = Archiver(client, session_factory, executor)

        assert archiver.schedule(photo.id, b"x", "a.jpg", event.slug) is None
        client.upload.assert_not_called()

        executor.run_all()
        client.upload.assert_called_once()

    def test_schedule_without_client_is_noop(self, session_factory) -> None:
        executor = ImmediateExecutor()
        Archiver(None, session_factory, executor).schedule("p1", b"x", "a.jpg", "slug")
        assert executor.calls == 0

    def test_discard(self, session_factory) -> None:
        client = MagicMock()
        assert Archiver(client, session_factory, ImmediateExecutor()).discard("file-1") is True
        client.trash.assert_called_once_with("file-1")

        client.trash.side_effect = RuntimeError("forbidden")
        assert Archiver(client, session_factory, ImmediateExecutor()).discard("file-1") is False
        assert Archiver(None, session_factory, ImmediateExecutor()).discard("file-1") is False
