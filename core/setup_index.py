"""
Prefix index of setup exports on disk.

Entries are keyed by path segments, normally (vehicle, track, setup name), in
a trie whose nodes live in an arena and are addressed by integer id. Segments
are matched case-insensitively; listings come out in natural order at every
level.

The index allows many concurrent readers and a single writer.
"""
import threading
import unicodedata
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence, Union

from core.natural import natural_key

ROOT_ID = 0


class ReadWriteLock:
    """
    Writer-preferring reader/writer lock.

    Readers share the lock; a waiting writer blocks new readers so that a
    steady stream of listings cannot starve index updates.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self):
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


@dataclass(frozen=True)
class IndexEntry:
    """One setup file known to the index."""
    segments: tuple[str, ...]
    location: str
    modified_at: float = 0.0

    @property
    def vehicle(self) -> Optional[str]:
        return self.segments[0] if len(self.segments) > 0 else None

    @property
    def track(self) -> Optional[str]:
        return self.segments[1] if len(self.segments) > 2 else None

    @property
    def name(self) -> str:
        return self.segments[-1] if self.segments else Path(self.location).stem

    def to_dict(self) -> dict:
        return {
            "segments": list(self.segments),
            "vehicle": self.vehicle,
            "track": self.track,
            "name": self.name,
            "location": self.location,
            "modified_at": self.modified_at,
        }


@dataclass
class _Node:
    key: str  # Normalized segment
    label: str  # Segment as first seen, for display
    parent: Optional[int]
    children: dict[str, int] = field(default_factory=dict)
    entries: dict[str, IndexEntry] = field(default_factory=dict)


def normalize_segment(segment: str) -> str:
    """Case-folded, NFC-normalized form used as a trie key."""
    return unicodedata.normalize("NFC", segment).strip().casefold()


def segments_from_path(path: Union[str, Path], root: Union[str, Path]) -> tuple[str, ...]:
    """
    Derive index segments from a file's place under the setups root.

    ``<root>/Car1/Track1/Setup_1.htm`` -> ("Car1", "Track1", "Setup_1")
    """
    relative = Path(path).relative_to(root)
    return tuple(relative.parts[:-1]) + (relative.stem,)


class SetupIndex:
    """
    Trie over normalized path segments mapping to setup file locations.

    At most one entry exists per location. Updating a location whose segments
    changed (a rename, or an export re-saved for another track) moves the
    entry to its new path.
    """

    def __init__(self):
        self._lock = ReadWriteLock()
        self._nodes: list[Optional[_Node]] = [_Node(key="", label="", parent=None)]
        self._free: list[int] = []
        self._locations: dict[str, int] = {}

    # -------------------------------------------------------------------------
    # Mutation (single writer)
    # -------------------------------------------------------------------------

    def insert(self, segments: Sequence[str], location: str, modified_at: float = 0.0) -> bool:
        """
        Create or update the entry for ``location``.

        An update carrying an older ``modified_at`` than the indexed entry is
        ignored. Returns True when the index changed.
        """
        with self._lock.write_locked():
            return self._insert(tuple(segments), str(location), modified_at)

    def remove(self, location: str) -> Optional[IndexEntry]:
        """Remove the entry for ``location``; no-op if it is not indexed."""
        with self._lock.write_locked():
            return self._remove(str(location))

    def rebuild(self, entries: Iterable[tuple[Sequence[str], str, float]]) -> int:
        """Replace the whole index with ``entries`` in one write. Returns the entry count."""
        with self._lock.write_locked():
            self._reset()
            for segments, location, modified_at in entries:
                self._insert(tuple(segments), str(location), modified_at)
            return len(self._locations)

    def clear(self):
        with self._lock.write_locked():
            self._reset()

    # -------------------------------------------------------------------------
    # Queries (shared readers)
    # -------------------------------------------------------------------------

    def list_prefix(self, segments: Sequence[str] = ()) -> Iterator[IndexEntry]:
        """
        Yield the entries under ``segments`` in natural order.

        Each call walks from the root again. The walk is taken under the read
        lock when iteration starts, so later updates do not affect it.
        """
        with self._lock.read_locked():
            node_id = self._find(segments)
            entries = [] if node_id is None else self._collect(node_id)
        yield from entries

    def children(self, segments: Sequence[str] = ()) -> list[str]:
        """Display labels of the next level below ``segments``, in natural order."""
        with self._lock.read_locked():
            node_id = self._find(segments)
            if node_id is None:
                return []
            node = self._nodes[node_id]
            labels = [self._nodes[child].label for child in node.children.values()]
        return sorted(labels, key=natural_key)

    def get(self, location: str) -> Optional[IndexEntry]:
        with self._lock.read_locked():
            node_id = self._locations.get(str(location))
            if node_id is None:
                return None
            return self._nodes[node_id].entries[str(location)]

    def __contains__(self, location) -> bool:
        return self.get(location) is not None

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._locations)

    @property
    def node_count(self) -> int:
        """Live trie nodes, root included."""
        with self._lock.read_locked():
            return len(self._nodes) - len(self._free)

    # -------------------------------------------------------------------------
    # Internals; callers hold the lock
    # -------------------------------------------------------------------------

    def _reset(self):
        self._nodes = [_Node(key="", label="", parent=None)]
        self._free = []
        self._locations = {}

    def _allocate(self, node: _Node) -> int:
        if self._free:
            node_id = self._free.pop()
            self._nodes[node_id] = node
        else:
            node_id = len(self._nodes)
            self._nodes.append(node)
        return node_id

    def _find(self, segments: Sequence[str]) -> Optional[int]:
        node_id = ROOT_ID
        for segment in segments:
            node_id = self._nodes[node_id].children.get(normalize_segment(segment))
            if node_id is None:
                return None
        return node_id

    def _insert(self, segments: tuple[str, ...], location: str, modified_at: float) -> bool:
        current = self._locations.get(location)
        if current is not None:
            existing = self._nodes[current].entries[location]
            if modified_at < existing.modified_at:
                return False
            if existing.segments == segments and existing.modified_at == modified_at:
                return False
            if self._find(segments) == current:
                self._nodes[current].entries[location] = IndexEntry(segments, location, modified_at)
                return True
            self._remove(location)

        node_id = ROOT_ID
        for segment in segments:
            key = normalize_segment(segment)
            child = self._nodes[node_id].children.get(key)
            if child is None:
                child = self._allocate(_Node(key=key, label=segment, parent=node_id))
                self._nodes[node_id].children[key] = child
            node_id = child

        self._nodes[node_id].entries[location] = IndexEntry(segments, location, modified_at)
        self._locations[location] = node_id
        return True

    def _remove(self, location: str) -> Optional[IndexEntry]:
        node_id = self._locations.pop(location, None)
        if node_id is None:
            return None

        entry = self._nodes[node_id].entries.pop(location)

        # Prune nodes left without entries or children
        while node_id != ROOT_ID:
            node = self._nodes[node_id]
            if node.entries or node.children:
                break
            parent = self._nodes[node.parent]
            del parent.children[node.key]
            self._nodes[node_id] = None
            self._free.append(node_id)
            node_id = node.parent

        return entry

    def _collect(self, node_id: int) -> list[IndexEntry]:
        result = []
        stack = [node_id]
        while stack:
            node = self._nodes[stack.pop()]
            result.extend(sorted(
                node.entries.values(),
                key=lambda e: (natural_key(e.name), e.location),
            ))
            ordered = sorted(node.children.values(), key=lambda c: natural_key(self._nodes[c].label))
            # Reversed so the first child is visited first
            stack.extend(reversed(ordered))
        return result
