# scripts/ingest_service.py
import argparse
import logging
import signal
import threading

from app.config import ensure_directories, settings
from app.db import Base, SessionLocal, engine
from app.services.archive import Archiver, DriveArchive
from app.services.ftp import build_ftp_server
from app.services.storage import build_storage
from app.services.watcher import IntakeWatcher

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("ingest-service")


def main(with_ftp: bool = True):
    ensure_directories(settings)
    Base.metadata.create_all(bind=engine)

    print("UNIFIED INGEST SERVICE STARTING...")
    print(f"Ingest Root: {settings.INTAKE_ROOT}")

    storage = build_storage(settings)
    archiver = Archiver(DriveArchive.from_settings(settings), SessionLocal)
    watcher = IntakeWatcher(
        settings.INTAKE_ROOT,
        settings.PROCESSED_ROOT,
        SessionLocal,
        storage,
        archiver,
        stability=settings.WATCH_STABILITY_SECONDS,
        poll=settings.WATCH_POLL_SECONDS,
        cooldown=settings.WATCH_COOLDOWN_SECONDS,
    )

    ftp_server = None
    if with_ftp:
        ftp_server = build_ftp_server(settings.INTAKE_ROOT, settings.FTP_HOST, settings.FTP_PORT)
        threading.Thread(target=ftp_server.serve_forever, name="ftp", daemon=True).start()

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    watcher.start()
    stop.wait()

    print("Stopping Ingest Service...")
    if ftp_server is not None:
        ftp_server.close_all()
    watcher.stop()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Watch the intake folder and accept FTP drops")
    parser.add_argument("--no-ftp", action="store_true", help="only watch the intake folder")
    args = parser.parse_args()
    main(with_ftp=not args.no_ftp)
