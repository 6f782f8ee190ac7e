import logging
import os
import time

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.config import settings
from app.db import Base, SessionLocal, engine, get_db
from app.errors import EventNotFound, PipelineError
from app.models import Event, Photo
from app.schemas import IngestFolder, PhotoOut, ReprocessResult, ReprocessTargets, StorageStats
from app.services.archive import Archiver, DriveArchive
from app.services.pipeline import create_photo, delete_photo
from app.services.reprocess import list_reprocess_targets, reprocess_event, reprocess_photo
from app.services.storage import build_storage
from app.services.watcher import ensure_intake_folder, intake_folder

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("api")

QUOTA_GB = 10
QUOTA_BYTES = QUOTA_GB * 1024 * 1024 * 1024

# ------------------ Initialize App ------------------
app = FastAPI(title="Event Photo Ingest API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)

storage = build_storage(settings)
archiver = Archiver(DriveArchive.from_settings(settings), SessionLocal)


def get_storage():
    return storage


def get_archiver():
    return archiver


def pipeline_options() -> dict:
    return {
        "collection": settings.PHOTO_COLLECTION,
        "public_root": settings.PUBLIC_ROOT,
        "fetch_timeout": settings.ASSET_FETCH_TIMEOUT,
    }


def request_deadline() -> float:
    return time.monotonic() + settings.PIPELINE_TIMEOUT_SECONDS


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    logger.warning(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse({"error": str(exc)}, status_code=exc.status_code)


# ------------------ API Routes ------------------

@app.post("/api/admin/photos/upload", response_model=PhotoOut)
async def upload_photo(
    file: UploadFile = File(...),
    eventId: str = Form(...),
    momentId: str | None = Form(None),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
    archiver=Depends(get_archiver),
):
    data = await file.read()
    if not data:
        return JSONResponse({"error": "No file uploaded"}, status_code=400)

    logger.info(f"Processing upload for event {eventId}, moment {momentId}. File: {file.filename}")
    photo = await run_in_threadpool(
        create_photo,
        db,
        data,
        file.filename or "upload.jpg",
        eventId,
        momentId,
        storage=storage,
        archiver=archiver,
        deadline=request_deadline(),
        **pipeline_options(),
    )
    return photo


@app.delete("/api/admin/photos/{photo_id}")
def remove_photo(
    photo_id: str,
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
    archiver=Depends(get_archiver),
):
    delete_photo(db, photo_id, storage=storage, archiver=archiver, collection=settings.PHOTO_COLLECTION)
    return {"success": True}


@app.post("/api/admin/photos/{photo_id}/reprocess")
def reprocess_single(photo_id: str, db: Session = Depends(get_db), storage=Depends(get_storage)):
    reprocess_photo(db, photo_id, storage=storage, deadline=request_deadline(), **pipeline_options())
    return {"success": True}


@app.get("/api/admin/events/{event_id}/reprocess", response_model=ReprocessTargets)
def reprocess_targets(event_id: str, db: Session = Depends(get_db)):
    ids = list_reprocess_targets(db, event_id)
    return ReprocessTargets(photo_ids=ids, total=len(ids))


@app.post("/api/admin/events/{event_id}/reprocess", response_model=ReprocessResult)
def reprocess_all(event_id: str, db: Session = Depends(get_db), storage=Depends(get_storage)):
    summary = reprocess_event(
        db, event_id, storage=storage, deadline=request_deadline(), **pipeline_options()
    )
    return ReprocessResult(
        message=f"Branding updated for {summary.success} photos. {summary.failed} failed.",
        success_count=summary.success,
        fail_count=summary.failed,
        total=summary.total,
        failures=summary.failures,
    )


def _event_or_404(db: Session, event_id: str) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise EventNotFound(event_id)
    return event


@app.get("/api/admin/events/{event_id}/ingest", response_model=IngestFolder)
def ingest_folder_status(event_id: str, db: Session = Depends(get_db)):
    path = intake_folder(settings.INTAKE_ROOT, _event_or_404(db, event_id).slug)
    return IngestFolder(exists=os.path.isdir(path), path=os.path.abspath(path))


@app.post("/api/admin/events/{event_id}/ingest", response_model=IngestFolder)
def create_ingest_folder(event_id: str, db: Session = Depends(get_db)):
    path = ensure_intake_folder(settings.INTAKE_ROOT, _event_or_404(db, event_id).slug)
    return IngestFolder(exists=True, path=os.path.abspath(path))


@app.get("/api/admin/stats/storage", response_model=StorageStats)
def storage_stats(db: Session = Depends(get_db)):
    used, count = db.execute(select(func.coalesce(func.sum(Photo.file_size), 0), func.count(Photo.id))).one()
    return StorageStats(
        used_bytes=used,
        total_bytes=QUOTA_BYTES,
        percentage=min(100.0, used / QUOTA_BYTES * 100),
        photo_count=count,
        quota_gb=QUOTA_GB,
    )


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}
