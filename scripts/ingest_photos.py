# scripts/ingest_photos.py
import argparse
import logging
import os
from glob import glob

from app.config import ensure_directories, settings
from app.db import SessionLocal
from app.errors import PipelineError
from app.services.archive import Archiver, DriveArchive
from app.services.pipeline import create_photo, find_event_by_slug
from app.services.storage import build_storage

logging.basicConfig(level=logging.WARNING)


def find_all_images(folder: str):
    extensions = ("*.jpg", "*.jpeg", "*.png", "*.JPG", "*.JPEG", "*.PNG")
    image_paths = []
    for ext in extensions:
        image_paths.extend(glob(os.path.join(folder, "**", ext), recursive=True))
    return sorted(set(image_paths))


def main(event_slug: str, folder: str, moment_id: str | None = None):
    ensure_directories(settings)

    with SessionLocal() as db:
        ev = find_event_by_slug(db, event_slug)
        if not ev:
            print(f"No event with slug '{event_slug}'. Create it first.")
            return 1
        event_id = ev.id

    storage = build_storage(settings)
    archiver = Archiver(DriveArchive.from_settings(settings), SessionLocal)

    files = find_all_images(folder)
    print(f"Found {len(files)} images across all subfolders.")

    ok = failed = 0
    for path in files:
        with open(path, "rb") as f:
            data = f.read()

        # Short-lived session per photo so one failure can't poison the rest
        with SessionLocal() as db:
            try:
                photo = create_photo(db, data, os.path.basename(path), event_id, moment_id,
                                     storage=storage, archiver=archiver)
            except PipelineError as e:
                print(f"[FAIL] {os.path.basename(path)} → {e}")
                failed += 1
                continue

        print(f"[OK] {os.path.basename(path)} → {photo.original_key} ({photo.width}x{photo.height})")
        ok += 1

    print(f"Imported {ok} photos, {failed} failed.")
    # Let pending archive uploads finish before exiting
    archiver.executor.shutdown(wait=True)
    return 0 if failed == 0 else 2


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--event", required=True, help="event slug, e.g., wedding-night-2026")
    parser.add_argument("--moment", default=None, help="optional moment id for every photo")
    parser.add_argument("folder", help="The root folder containing the event images")
    args = parser.parse_args()
    raise SystemExit(main(args.event, args.folder, args.moment))
