# app/services/storage.py
import logging
import os
import uuid

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from app.config import Settings, StorageBackendKind, resolve_storage_backend
from app.errors import StorageNotFound, StorageReadFailed, StorageWriteFailed

logger = logging.getLogger("storage")

ORIGINALS = "originals"
PREVIEWS = "previews"
THUMBNAILS = "thumbnails"


def generate_filename(original_filename: str) -> str:
    """Random short id plus the original extension, shared by all variants of a photo."""
    ext = os.path.splitext(original_filename)[1].lower() or ".jpg"
    return f"{uuid.uuid4().hex[:12]}{ext}"


def variant_keys(filename: str) -> tuple[str, str, str]:
    return f"{ORIGINALS}/{filename}", f"{PREVIEWS}/{filename}", f"{THUMBNAILS}/{filename}"


class StorageBackend:
    kind: StorageBackendKind

    def put(self, collection: str, key: str, data: bytes, content_type: str) -> None:
        raise NotImplementedError

    def get(self, collection: str, key: str) -> bytes:
        raise NotImplementedError

    def delete(self, collection: str, key: str) -> None:
        raise NotImplementedError


class LocalStorage(StorageBackend):
    """Objects live under ``<root>/<collection>/<key>`` on the local disk."""

    kind = StorageBackendKind.LOCAL

    def __init__(self, root: str):
        self.root = root

    def path_for(self, collection: str, key: str) -> str:
        return os.path.join(self.root, collection, *key.split("/"))

    def put(self, collection, key, data, content_type):
        path = self.path_for(collection, key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise StorageWriteFailed(key, str(e)) from e
        logger.info(f"Wrote {len(data)} bytes to {path}")

    def get(self, collection, key):
        path = self.path_for(collection, key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise StorageNotFound(collection, key) from e
        except OSError as e:
            raise StorageReadFailed(key, str(e)) from e

    def delete(self, collection, key):
        try:
            os.remove(self.path_for(collection, key))
        except FileNotFoundError as e:
            raise StorageNotFound(collection, key) from e


class AzureBlobStorage(StorageBackend):
    kind = StorageBackendKind.AZURE_BLOB

    def __init__(self, service_client: BlobServiceClient):
        self.service_client = service_client

    @classmethod
    def from_connection_string(cls, connection_string: str) -> "AzureBlobStorage":
        return cls(BlobServiceClient.from_connection_string(connection_string))

    def _blob(self, collection, key):
        return self.service_client.get_blob_client(container=collection, blob=key)

    def put(self, collection, key, data, content_type):
        try:
            self._blob(collection, key).upload_blob(
                data,
                overwrite=True,
                content_settings=ContentSettings(content_type=content_type),
                timeout=300,
            )
        except AzureError as e:
            raise StorageWriteFailed(key, str(e)) from e
        logger.info(f"Uploaded {len(data)} bytes to container '{collection}' as {key}")

    def get(self, collection, key):
        try:
            return self._blob(collection, key).download_blob().readall()
        except ResourceNotFoundError as e:
            raise StorageNotFound(collection, key) from e
        except AzureError as e:
            raise StorageReadFailed(key, str(e)) from e

    def delete(self, collection, key):
        try:
            self._blob(collection, key).delete_blob()
        except ResourceNotFoundError as e:
            raise StorageNotFound(collection, key) from e


def build_storage(cfg: Settings) -> StorageBackend:
    kind = resolve_storage_backend(cfg)
    if kind is StorageBackendKind.AZURE_BLOB:
        logger.info(f"Using Azure Blob storage (account {cfg.STORAGE_ACCOUNT_NAME})")
        return AzureBlobStorage.from_connection_string(cfg.AZURE_STORAGE_CONNECTION_STRING)
    logger.info(f"Using local storage rooted at {cfg.PUBLIC_ROOT}")
    return LocalStorage(cfg.PUBLIC_ROOT)
