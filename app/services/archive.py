# app/services/archive.py
import io
import logging
from concurrent.futures import Executor, ThreadPoolExecutor

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.http import MediaIoBaseUpload

from app.config import ARCHIVE_ROOT_FOLDER, Settings, archive_configured
from app.models import Photo

logger = logging.getLogger("archive")

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = [
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive.metadata.readonly",
]


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveArchive:
    """Thin wrapper over the Drive v3 files API."""

    def __init__(self, service):
        self.service = service

    @classmethod
    def from_settings(cls, cfg: Settings) -> "DriveArchive | None":
        if not archive_configured(cfg):
            return None
        creds = Credentials(
            None,
            refresh_token=cfg.GOOGLE_REFRESH_TOKEN,
            token_uri=TOKEN_URI,
            client_id=cfg.GOOGLE_CLIENT_ID,
            client_secret=cfg.GOOGLE_CLIENT_SECRET,
            scopes=SCOPES,
        )
        return cls(build("drive", "v3", credentials=creds, cache_discovery=False))

    def get_or_create_folder(self, name: str, parent_id: str | None = None) -> str:
        query = f"name = '{_quote(name)}' and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
        if parent_id:
            query += f" and '{parent_id}' in parents"

        found = self.service.files().list(q=query, fields="files(id, name)").execute()
        files = found.get("files", [])
        if files:
            return files[0]["id"]

        body = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            body["parents"] = [parent_id]
        folder = self.service.files().create(body=body, fields="id").execute()
        logger.info(f"Created archive folder {name} ({folder['id']})")
        return folder["id"]

    def upload(self, data: bytes, filename: str, folder_id: str | None, mime_type: str = "image/jpeg") -> str:
        body = {"name": filename}
        if folder_id:
            body["parents"] = [folder_id]
        media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type, resumable=False)
        created = self.service.files().create(
            body=body, media_body=media, fields="id, webViewLink, webContentLink"
        ).execute()
        return created["id"]

    def trash(self, file_id: str) -> None:
        self.service.files().update(fileId=file_id, body={"trashed": True}).execute()


class Archiver:
    """Mirrors originals into ``PIXER_ARCHIVE/<event slug>/`` in the background.

    Archival is best-effort: failures are logged and dropped, never retried,
    and never reach whoever scheduled the upload.
    """

    def __init__(self, client: DriveArchive | None, session_factory, executor: Executor | None = None):
        self.client = client
        self.session_factory = session_factory
        self.executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="archive")

    def schedule(self, photo_id: str, data: bytes, filename: str, event_slug: str, mime_type: str = "image/jpeg") -> None:
        if self.client is None:
            logger.debug(f"Archive not configured, skipping photo {photo_id}")
            return
        self.executor.submit(self.sync, photo_id, data, filename, event_slug, mime_type)

    def sync(self, photo_id: str, data: bytes, filename: str, event_slug: str, mime_type: str = "image/jpeg") -> str | None:
        try:
            root_id = self.client.get_or_create_folder(ARCHIVE_ROOT_FOLDER)
            event_folder_id = self.client.get_or_create_folder(event_slug, root_id)
            file_id = self.client.upload(data, filename, event_folder_id, mime_type)
            logger.info(f"Archived photo {photo_id} to {ARCHIVE_ROOT_FOLDER}/{event_slug}/{filename} ({file_id})")

            with self.session_factory() as db:
                photo = db.get(Photo, photo_id)
                if photo is None:
                    logger.warning(f"Photo {photo_id} vanished before its archive id could be saved")
                    return file_id
                photo.archive_ref = file_id
                db.commit()
            return file_id
        except Exception:
            logger.exception(f"Archive upload failed for photo {photo_id}")
            return None

    def discard(self, archive_ref: str) -> bool:
        if self.client is None:
            return False
        try:
            self.client.trash(archive_ref)
            return True
        except Exception:
            logger.exception(f"Failed to delete archived file {archive_ref}")
            return False
