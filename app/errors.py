# app/errors.py
"""Errors raised by the ingestion, storage and reprocessing services.

Every error carries the HTTP status the API layer answers with, so routes
never have to translate them one by one.
"""


class PipelineError(Exception):
    status_code = 500


class EventNotFound(PipelineError):
    status_code = 404

    def __init__(self, event_ref: str):
        self.event_ref = event_ref
        super().__init__(f"Event not found: {event_ref}")


class PhotoNotFound(PipelineError):
    status_code = 404

    def __init__(self, photo_id: str):
        self.photo_id = photo_id
        super().__init__(f"Photo not found: {photo_id}")


class DecodeFailed(PipelineError):
    """Input bytes are not a decodable raster image."""

    status_code = 422

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Could not decode image: {reason}")


class StorageWriteFailed(PipelineError):
    status_code = 502

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Could not write {key}: {reason}")


class StorageReadFailed(PipelineError):
    status_code = 502

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Could not read {key}: {reason}")


class StorageNotFound(PipelineError):
    status_code = 404

    def __init__(self, collection: str, key: str):
        self.collection = collection
        self.key = key
        super().__init__(f"No object {key} in {collection}")


class SourceUnavailable(PipelineError):
    """The stored original of a photo could not be read back."""

    status_code = 409

    def __init__(self, photo_id: str, key: str):
        self.photo_id = photo_id
        self.key = key
        super().__init__(f"Original {key} of photo {photo_id} is unavailable")


class CompositeFailed(PipelineError):
    status_code = 422

    def __init__(self, photo_id: str, reason: str):
        self.photo_id = photo_id
        self.reason = reason
        super().__init__(f"Could not render photo {photo_id}: {reason}")


class PipelineTimeout(PipelineError):
    status_code = 504

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(f"Processing budget exhausted before {stage}")
