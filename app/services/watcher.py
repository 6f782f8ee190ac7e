# app/services/watcher.py
"""Drop-folder intake.

Photos land in ``<intake root>/<event slug>/<file>`` (copied locally or
uploaded over FTP). Every path moves through a small state machine::

    IDLE -> DEBOUNCING -> PROCESSING -> COOLING_DOWN -> IDLE

Only an IDLE path can be claimed, so the burst of created/modified events a
single write produces ends up as one ingestion. The cool-down keeps the path
blocked for a while after processing to absorb late notifications.
"""
import logging
import os
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from enum import Enum

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from app.services.pipeline import create_photo, find_event_by_slug

logger = logging.getLogger("watcher")

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png")
PROCESSED_DIR_NAMES = ("processed", "_processed")


class PathState(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    PROCESSING = "processing"
    COOLING_DOWN = "cooling_down"


class PathTracker:
    """Thread-safe per-path state, shared by all filesystem callbacks."""

    def __init__(self, cooldown: float, clock=time.monotonic):
        self.cooldown = cooldown
        self.clock = clock
        self._lock = threading.Lock()
        self._states: dict[str, PathState] = {}
        self._cooldown_until: dict[str, float] = {}

    def _current(self, path: str) -> PathState:
        state = self._states.get(path, PathState.IDLE)
        if state is PathState.COOLING_DOWN and self.clock() >= self._cooldown_until[path]:
            del self._states[path]
            del self._cooldown_until[path]
            return PathState.IDLE
        return state

    def _sweep(self) -> None:
        now = self.clock()
        for path in [p for p, until in self._cooldown_until.items() if now >= until]:
            del self._states[path]
            del self._cooldown_until[path]

    def __len__(self) -> int:
        with self._lock:
            self._sweep()
            return len(self._states)

    def state(self, path: str) -> PathState:
        with self._lock:
            return self._current(path)

    def claim(self, path: str) -> bool:
        with self._lock:
            self._sweep()
            if self._current(path) is not PathState.IDLE:
                return False
            self._states[path] = PathState.DEBOUNCING
            return True

    def start_processing(self, path: str) -> None:
        with self._lock:
            if self._states.get(path) is not PathState.DEBOUNCING:
                raise RuntimeError(f"{path} is not debouncing")
            self._states[path] = PathState.PROCESSING

    def finish(self, path: str) -> None:
        with self._lock:
            self._states[path] = PathState.COOLING_DOWN
            self._cooldown_until[path] = self.clock() + self.cooldown
            self._sweep()

    def release(self, path: str) -> None:
        with self._lock:
            self._states.pop(path, None)
            self._cooldown_until.pop(path, None)


def intake_slug(path: str, intake_root: str) -> str | None:
    """Event slug for an intake file, or None when the path should be ignored."""
    rel = os.path.relpath(os.path.abspath(path), os.path.abspath(intake_root))
    parts = rel.split(os.sep)
    if rel.startswith("..") or len(parts) < 2:
        return None
    if any(p.startswith((".", "_")) or p in PROCESSED_DIR_NAMES for p in parts):
        return None
    if not parts[-1].lower().endswith(IMAGE_EXTENSIONS):
        return None
    return parts[0]


def wait_until_stable(path: str, stability: float, poll: float, clock=time.monotonic, sleep=time.sleep) -> bool:
    """Block until size and mtime stop changing for ``stability`` seconds.

    Returns False if the file disappears while waiting.
    """
    last = None
    stable_since = clock()
    while True:
        try:
            st = os.stat(path)
        except FileNotFoundError:
            return False
        signature = (st.st_size, st.st_mtime_ns)
        now = clock()
        if signature != last:
            last = signature
            stable_since = now
        elif now - stable_since >= stability:
            return True
        sleep(poll)


def unique_path(path: str) -> str:
    """``path`` if it is free, otherwise the first free ``name-N.ext`` beside it."""
    if not os.path.exists(path):
        return path
    stem, ext = os.path.splitext(path)
    n = 1
    while os.path.exists(f"{stem}-{n}{ext}"):
        n += 1
    return f"{stem}-{n}{ext}"


def intake_folder(intake_root: str, slug: str) -> str:
    return os.path.join(intake_root, slug)


def ensure_intake_folder(intake_root: str, slug: str) -> str:
    path = intake_folder(intake_root, slug)
    os.makedirs(path, exist_ok=True)
    return path


class IntakeWatcher:
    def __init__(
        self,
        intake_root: str,
        processed_root: str,
        session_factory,
        storage,
        archiver=None,
        *,
        stability: float = 1.5,
        poll: float = 0.1,
        cooldown: float = 5.0,
        tracker: PathTracker | None = None,
        executor: Executor | None = None,
        clock=time.monotonic,
        sleep=time.sleep,
        pipeline_options: dict | None = None,
    ):
        self.intake_root = os.path.abspath(intake_root)
        self.processed_root = os.path.abspath(processed_root)
        self.session_factory = session_factory
        self.storage = storage
        self.archiver = archiver
        self.stability = stability
        self.poll = poll
        self.clock = clock
        self.sleep = sleep
        self.tracker = tracker or PathTracker(cooldown, clock=clock)
        self.executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="intake")
        self.pipeline_options = pipeline_options or {}
        self._observer = None

    def notify(self, path: str) -> bool:
        """Entry point for every filesystem event. Returns True if the path was claimed."""
        path = os.path.abspath(path)
        slug = intake_slug(path, self.intake_root)
        if slug is None:
            return False
        if not self.tracker.claim(path):
            logger.debug(f"Ignoring duplicate event for {path} ({self.tracker.state(path).value})")
            return False
        self.executor.submit(self._handle, path, slug)
        return True

    def _handle(self, path: str, slug: str) -> None:
        try:
            arrived = wait_until_stable(path, self.stability, self.poll, clock=self.clock, sleep=self.sleep)
        except OSError as e:
            logger.warning(f"Could not watch {path}: {e}")
            arrived = False
        if not arrived:
            self.tracker.release(path)
            return

        self.tracker.start_processing(path)
        try:
            self.process(path, slug)
        finally:
            self.tracker.finish(path)

    def process(self, path: str, slug: str):
        filename = os.path.basename(path)
        logger.info(f"New photo detected: {os.path.relpath(path, self.intake_root)}")

        try:
            with self.session_factory() as db:
                event = find_event_by_slug(db, slug)
                if event is None:
                    logger.error(f"Event not found for slug: {slug}, leaving {filename} in place")
                    return None
                with open(path, "rb") as f:
                    data = f.read()
                logger.info(f"Processing {filename} for event \"{event.name}\"...")
                photo = create_photo(
                    db, data, filename, event.id,
                    storage=self.storage, archiver=self.archiver, **self.pipeline_options,
                )
        except Exception:
            logger.exception(f"Failed to ingest {path}, leaving it for the next attempt")
            return None

        logger.info(f"Photo {photo.id} created from {filename}")
        self.move_to_processed(path, slug)
        return photo

    def move_to_processed(self, path: str, slug: str) -> str | None:
        rel = os.path.relpath(os.path.abspath(path), intake_folder(self.intake_root, slug))
        target = os.path.join(self.processed_root, slug, rel)
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            target = unique_path(target)
            os.replace(path, target)
        except OSError as e:
            logger.error(f"Could not move {path} to {target}: {e}")
            return None
        logger.info(f"Local backup saved to {target}")
        return target

    def scan_existing(self) -> int:
        claimed = 0
        for dirpath, _, filenames in os.walk(self.intake_root):
            for name in filenames:
                if self.notify(os.path.join(dirpath, name)):
                    claimed += 1
        return claimed

    def start(self) -> None:
        os.makedirs(self.intake_root, exist_ok=True)
        self._observer = Observer()
        self._observer.schedule(IntakeEventHandler(self), self.intake_root, recursive=True)
        self._observer.start()
        logger.info(f"Watching {self.intake_root} for new photos")
        self.scan_existing()

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        self.executor.shutdown(wait=True)


class IntakeEventHandler(FileSystemEventHandler):
    def __init__(self, watcher: IntakeWatcher):
        super().__init__()
        self.watcher = watcher

    def on_created(self, event):
        if not event.is_directory:
            self.watcher.notify(event.src_path)

    def on_modified(self, event):
        if not event.is_directory:
            self.watcher.notify(event.src_path)

    def on_moved(self, event):
        if not event.is_directory:
            self.watcher.notify(event.dest_path)
