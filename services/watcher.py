"""
File System Watcher Service for SetupDiff.

Uses watchdog to monitor the setups directory and keeps the setup index in
sync with it. Editors and the sim often emit several events per save, so
events are coalesced per path before the file is re-indexed.
"""
import os
import time
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from watchdog.observers import Observer
from watchdog.events import (
    FileSystemEventHandler,
    FileCreatedEvent,
    FileModifiedEvent,
    FileDeletedEvent,
    FileMovedEvent,
)

from core.file_parser import ParseError, parse_setup_file
from core.setup_index import IndexEntry, SetupIndex, segments_from_path
from config import settings

logger = logging.getLogger(__name__)

CREATED = "created"
MODIFIED = "modified"
REMOVED = "removed"


@dataclass(frozen=True)
class IndexUpdate:
    """One change applied to the index, reported to listeners."""
    kind: str  # "added", "updated" or "removed"
    location: str
    segments: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {"kind": self.kind, "location": self.location, "segments": list(self.segments)}


class EventDebouncer:
    """
    Coalesces bursts of events per key.

    Each key has its own deadline timer. Scheduling an action for a key that
    is already pending replaces the action and restarts the timer, so only
    the latest event's effect runs once the key has been quiet for ``delay``
    seconds. Unrelated keys never wait on each other.
    """

    def __init__(self, delay: float):
        self.delay = delay
        self._pending: dict[str, tuple[threading.Timer, Callable[[], None]]] = {}
        self._lock = threading.Lock()
        self._closed = False

    def schedule(self, key: str, action: Callable[[], None]):
        with self._lock:
            if self._closed:
                return
            previous = self._pending.get(key)
            if previous:
                previous[0].cancel()
            timer = threading.Timer(self.delay, self._fire, args=(key,))
            timer.daemon = True
            self._pending[key] = (timer, action)
            timer.start()

    def _fire(self, key: str):
        with self._lock:
            pending = self._pending.get(key)
            if pending is None or pending[0] is not threading.current_thread():
                # Superseded by a later event
                return
            del self._pending[key]
        self._run(key, pending[1])

    def _run(self, key: str, action: Callable[[], None]):
        try:
            action()
        except Exception as e:
            logger.error(f"Error handling event for {key}: {e}")

    def flush(self) -> int:
        """Run every pending action now. Returns how many ran."""
        with self._lock:
            pending = list(self._pending.items())
            self._pending.clear()
        for key, (timer, action) in pending:
            timer.cancel()
            self._run(key, action)
        return len(pending)

    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    def shutdown(self, drain: bool = True):
        """Stop accepting events; run (``drain``) or drop what is pending."""
        with self._lock:
            self._closed = True
        if drain:
            self.flush()
        else:
            with self._lock:
                pending = list(self._pending.values())
                self._pending.clear()
            for timer, _ in pending:
                timer.cancel()


class SetupFileHandler(FileSystemEventHandler):
    """
    Translates watchdog events into (kind, path) notifications.

    A move is reported as the removal of the old path and the creation of the
    new one, so a setup renamed to a non-setup file drops out of the index.
    """

    def __init__(self, on_event: Callable[[str, str], None],
                 on_directory_removed: Optional[Callable[[str], None]] = None,
                 on_directory_added: Optional[Callable[[str], None]] = None):
        self.on_event = on_event
        self.on_directory_removed = on_directory_removed
        self.on_directory_added = on_directory_added

    def on_created(self, event: FileCreatedEvent):
        if event.is_directory:
            if self.on_directory_added:
                self.on_directory_added(os.fsdecode(event.src_path))
            return
        self.on_event(CREATED, os.fsdecode(event.src_path))

    def on_modified(self, event: FileModifiedEvent):
        if event.is_directory:
            return
        self.on_event(MODIFIED, os.fsdecode(event.src_path))

    def on_deleted(self, event: FileDeletedEvent):
        if event.is_directory:
            if self.on_directory_removed:
                self.on_directory_removed(os.fsdecode(event.src_path))
            return
        self.on_event(REMOVED, os.fsdecode(event.src_path))

    def on_moved(self, event: FileMovedEvent):
        if event.is_directory:
            if self.on_directory_removed:
                self.on_directory_removed(os.fsdecode(event.src_path))
            if self.on_directory_added:
                self.on_directory_added(os.fsdecode(event.dest_path))
            return
        self.on_event(REMOVED, os.fsdecode(event.src_path))
        self.on_event(CREATED, os.fsdecode(event.dest_path))


def discover_setup_files(root: str, extensions: list[str],
                         unreadable: Optional[list[str]] = None) -> Iterator[tuple[str, float]]:
    """
    Walk ``root`` and yield ``(path, mtime)`` for every setup export.

    Unreadable directories and files are logged and skipped. Directories that
    could not be listed are appended to ``unreadable`` when it is given.
    """
    suffixes = tuple(ext.lower() for ext in extensions)

    def on_error(error: OSError):
        logger.warning(f"Cannot read {error.filename}: {error.strerror}")
        if unreadable is not None and error.filename:
            unreadable.append(os.path.abspath(os.fsdecode(error.filename)))

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        dirnames.sort()
        for filename in sorted(filenames):
            if not filename.lower().endswith(suffixes):
                continue
            path = os.path.join(dirpath, filename)
            try:
                mtime = os.path.getmtime(path)
            except OSError as e:
                logger.warning(f"Cannot stat {path}: {e}")
                continue
            yield os.path.abspath(path), mtime


class DirectoryWatcher:
    """
    Watches a directory tree for setup export changes.

    Usage:
        watcher = DirectoryWatcher("/path/to/setups", handler)
        watcher.start()
        # ... later
        watcher.stop()
    """

    def __init__(self, watch_path: str, handler: FileSystemEventHandler, recursive: bool = True):
        self.watch_path = Path(watch_path)
        self.recursive = recursive
        self.handler = handler

        self._observer: Optional[Observer] = None
        self._running = False

    def start(self):
        """Start watching the directory."""
        if self._running:
            logger.warning("Watcher already running")
            return

        if not self.watch_path.exists():
            logger.error(f"Watch path does not exist: {self.watch_path}")
            raise FileNotFoundError(f"Watch path not found: {self.watch_path}")

        logger.info(f"Starting directory watcher on: {self.watch_path}")

        self._observer = Observer()
        self._observer.schedule(self.handler, str(self.watch_path), recursive=self.recursive)
        self._observer.start()
        self._running = True

        logger.info("Directory watcher started")

    def stop(self):
        """Stop watching the directory."""
        if not self._running:
            return

        logger.info("Stopping directory watcher")

        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

        self._running = False

        logger.info("Directory watcher stopped")

    def is_running(self) -> bool:
        """Check if watcher is running."""
        return self._running

    def is_healthy(self) -> bool:
        """Running, with a live observer thread."""
        return self._running and self._observer is not None and self._observer.is_alive()


class IndexService:
    """
    Keeps a SetupIndex in sync with the setups directory.

    On start (and after a watcher failure) the whole tree is walked once and
    bulk-loaded; from then on only the paths named by watch events are
    re-indexed.
    """

    def __init__(
        self,
        index: Optional[SetupIndex] = None,
        index_by: Optional[str] = None,
        extensions: Optional[list[str]] = None,
        debounce_seconds: Optional[float] = None,
        retry_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        parse_options: Optional[dict] = None,
    ):
        self.index = index if index is not None else SetupIndex()
        self.index_by = index_by or settings.INDEX_BY
        self.extensions = extensions or settings.SETUP_EXTENSIONS
        self.retry_seconds = settings.WATCH_RETRY_SECONDS if retry_seconds is None else retry_seconds
        self.max_retries = settings.WATCH_MAX_RETRIES if max_retries is None else max_retries
        self.parse_options = settings.parse_options() if parse_options is None else parse_options
        self.debouncer = EventDebouncer(
            settings.WATCH_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )

        self.root: Optional[str] = None
        self.watcher: Optional[DirectoryWatcher] = None
        self._listeners: list[Callable[[list[IndexUpdate]], None]] = []
        self._retry_timer: Optional[threading.Timer] = None
        self._retries = 0
        self._stats = {
            "files_indexed": 0,
            "events_applied": 0,
            "parse_failures": 0,
            "rescans": 0,
            "last_event": None,
            "started_at": None,
            "warnings": [],
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, root: str, watch: bool = True):
        """Bootstrap the index from ``root`` and start watching it."""
        if self.watcher and self.watcher.is_running():
            logger.warning("Watcher already running")
            return

        if not os.path.isdir(root):
            logger.error(f"Setups directory does not exist: {root}")
            raise FileNotFoundError(f"Setups directory not found: {root}")

        if self.debouncer.closed:
            self.debouncer = EventDebouncer(self.debouncer.delay)

        self.root = os.path.abspath(root)
        self.rescan()
        self._stats["started_at"] = time.time()

        if watch:
            self._start_watching()

        logger.info(f"Index service started on: {self.root}")

    def stop(self):
        """Stop watching and apply any events still pending."""
        if self._retry_timer:
            self._retry_timer.cancel()
            self._retry_timer = None
        if self.watcher:
            self.watcher.stop()
            self.watcher = None
        self.debouncer.shutdown(drain=True)
        logger.info("Index service stopped")

    def _start_watching(self):
        handler = SetupFileHandler(
            self.handle_event,
            on_directory_removed=self.handle_directory_removed,
            on_directory_added=self.handle_directory_added,
        )
        self.watcher = DirectoryWatcher(self.root, handler)
        try:
            self.watcher.start()
            self._retries = 0
        except OSError as e:
            self.watcher = None
            self._warn(f"Cannot watch {self.root}: {e}")
            self._schedule_recovery()

    def _schedule_recovery(self):
        if self._retries >= self.max_retries:
            self._warn(f"Giving up on watching {self.root}; the setup list may be stale")
            return
        self._retries += 1
        self._retry_timer = threading.Timer(self.retry_seconds, self.recover)
        self._retry_timer.daemon = True
        self._retry_timer.start()

    def recover(self):
        """Re-walk the tree and restart the watcher after a failure."""
        logger.info(f"Recovering index for {self.root} (attempt {self._retries})")
        if self.watcher:
            self.watcher.stop()
            self.watcher = None
        self.rescan()
        self._start_watching()

    def is_watching(self) -> bool:
        """True while the observer thread is alive."""
        return bool(self.watcher and self.watcher.is_healthy())

    def rearm(self) -> bool:
        """
        Restart a stopped or dead watcher without walking the tree again.

        Resets the retry budget, so a service that gave up watching gets a
        fresh set of attempts. Returns True when the watcher is running.
        """
        if self.root is None:
            return False
        if self.is_watching():
            return True
        if self._retry_timer:
            self._retry_timer.cancel()
            self._retry_timer = None
        if self.watcher:
            self.watcher.stop()
            self.watcher = None
        self._retries = 0
        self._start_watching()
        return self.is_watching()

    # -------------------------------------------------------------------------
    # Indexing
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Callable[[list[IndexUpdate]], None]):
        """Register a callback receiving the updates of every applied event."""
        self._listeners.append(listener)

    def rescan(self) -> int:
        """Full walk of the setups directory, replacing the index contents."""
        if self.root is None:
            raise RuntimeError("Index service has no root directory")

        logger.info(f"Scanning existing files in: {self.root}")
        entries = []
        unreadable: list[str] = []
        for path, mtime in discover_setup_files(self.root, self.extensions, unreadable):
            segments = self._segments_for(path)
            if segments is not None:
                entries.append((segments, path, mtime))

        if self.root in unreadable or not os.path.isdir(self.root):
            self._warn(f"Cannot read {self.root}; keeping {len(self.index)} previously indexed setups")
            return len(self.index)

        if unreadable:
            # Entries below directories we could not list are kept as they were
            prefixes = tuple(os.path.join(directory, "") for directory in unreadable)
            for entry in self.index.list_prefix():
                if entry.location.startswith(prefixes):
                    entries.append((entry.segments, entry.location, entry.modified_at))
            self._warn(f"Could not read {len(unreadable)} directories under {self.root}: "
                       f"{', '.join(unreadable)}")

        count = self.index.rebuild(entries)
        self._stats["files_indexed"] = count
        self._stats["rescans"] += 1
        logger.info(f"Indexed {count} existing files")
        return count

    def handle_event(self, kind: str, path: str):
        """Queue a watch event; bursts for the same path collapse into one update."""
        path = os.path.abspath(path)
        self.debouncer.schedule(path, lambda: self.apply_event(kind, path))

    def handle_directory_removed(self, directory: str):
        prefix = os.path.join(os.path.abspath(directory), "")
        for entry in list(self.index.list_prefix()):
            if entry.location.startswith(prefix):
                self.handle_event(REMOVED, entry.location)

    def handle_directory_added(self, directory: str):
        for path, _ in discover_setup_files(directory, self.extensions):
            self.handle_event(CREATED, path)

    def apply_event(self, kind: str, path: str) -> list[IndexUpdate]:
        """Apply one (coalesced) event to the index right away."""
        path = os.path.abspath(path)
        updates = []

        if kind == REMOVED or not self._is_setup_file(path):
            removed = self.index.remove(path)
            if removed:
                updates.append(IndexUpdate("removed", path, removed.segments))
        else:
            try:
                mtime = os.path.getmtime(path)
            except OSError:
                # Gone again before we got to it
                mtime = None

            segments = self._segments_for(path) if mtime is not None else None
            if segments is None:
                removed = self.index.remove(path)
                if removed:
                    updates.append(IndexUpdate("removed", path, removed.segments))
            else:
                existed = path in self.index
                if self.index.insert(segments, path, mtime):
                    updates.append(IndexUpdate("updated" if existed else "added", path, segments))

        self._stats["events_applied"] += 1
        self._stats["last_event"] = f"{kind}: {path}"
        self._stats["files_indexed"] = len(self.index)

        if updates:
            self._notify(updates)
        return updates

    def flush(self) -> int:
        """Apply every pending event now."""
        return self.debouncer.flush()

    def list_setups(self, prefix: tuple[str, ...] = ()) -> list[IndexEntry]:
        return list(self.index.list_prefix(prefix))

    def _is_setup_file(self, path: str) -> bool:
        return path.lower().endswith(tuple(ext.lower() for ext in self.extensions))

    def _segments_for(self, path: str) -> Optional[tuple[str, ...]]:
        if self.index_by == "path":
            try:
                return segments_from_path(path, self.root)
            except ValueError:
                logger.warning(f"Ignoring {path}: outside of {self.root}")
                return None

        try:
            document = parse_setup_file(path, **self.parse_options)
        except ParseError as e:
            logger.warning(f"Failed to parse setup: {e}")
            self._stats["parse_failures"] += 1
            return None

        return (document.vehicle, document.track or "Unknown Track", document.name or Path(path).stem)

    def _notify(self, updates: list[IndexUpdate]):
        for listener in self._listeners:
            try:
                listener(updates)
            except Exception as e:
                logger.error(f"Error notifying index listener: {e}")

    def _warn(self, message: str):
        logger.warning(message)
        warnings = self._stats["warnings"]
        warnings.append(message)
        del warnings[:-20]

    def get_stats(self) -> dict:
        """Get index service statistics."""
        return {
            **self._stats,
            "warnings": list(self._stats["warnings"]),
            "root": self.root,
            "pending_events": self.debouncer.pending(),
            "is_running": self.watcher.is_running() if self.watcher else False,
        }


# Standalone runner for testing
if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    def print_updates(updates: list[IndexUpdate]):
        for update in updates:
            print(f"{update.kind}: {' / '.join(update.segments)} ({update.location})")

    watch_dir = os.environ.get("WATCH_DIR", "./test_watch")
    Path(watch_dir).mkdir(exist_ok=True)

    print(f"Watching: {watch_dir}")
    print("Drop setup exports in this directory to test...")
    print("Press Ctrl+C to stop")

    service = IndexService()
    service.subscribe(print_updates)
    service.start(watch_dir)

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping...")
        service.stop()
