import os
import time
import logging
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Iterator, List, Optional, Tuple

log = logging.getLogger(__name__)

# -----------------------------
# CONFIG
# -----------------------------
# Matched case-sensitively against the suffix after the last dot.
VIDEO_EXTENSIONS = frozenset({
    "mp4",
    "av1",
    "avi",
    "flv",
    "heic",
    "mkv",
    "mov",
    "mpg",
    "mpeg",
    "m4v",
    "webm",
    "wmv",
    "3gp",
})

# -----------------------------
# ERRORS
# -----------------------------
class CatalogError(Exception):
    """Base class for catalog failures."""


class CatalogIOError(CatalogError, OSError):
    """A directory could not be read while building a catalog."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        msg = f"Failed to read {path}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class VideoNotFound(CatalogError, LookupError):
    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Failed to find video with given id: {identifier}")


# -----------------------------
# EXTENSION FILTER
# -----------------------------
def video_extension(name: str) -> str:
    # ".mp4" has no extension, like "README"
    ext = os.path.splitext(os.path.basename(name))[1]
    return ext[1:]


def is_video_file(name: str, extensions: Iterable[str] = VIDEO_EXTENSIONS) -> bool:
    ext = video_extension(name)
    return bool(ext) and ext in extensions


# -----------------------------
# BUILDER
# -----------------------------
def _sorted_entries(path: str) -> List[os.DirEntry]:
    try:
        with os.scandir(path) as it:
            return sorted(it, key=lambda e: e.name)
    except OSError as exc:
        raise CatalogIOError(path, exc.strerror or str(exc)) from exc


def scan_videos(root: str, extensions: Iterable[str] = VIDEO_EXTENSIONS) -> List[Tuple[str, str]]:
    """
    Walk ``root`` depth-first and return ``(path, extension)`` for every
    recognized video, in a reproducible order:
    - entries of each directory are sorted by name
    - a subdirectory is descended into where it sorts among its siblings

    Symlinked directories are followed, except into a directory that is
    already open further up the current path.

    Any unreadable directory aborts the whole scan with CatalogIOError.
    """
    extensions = frozenset(extensions)
    found = []
    # (real path, remaining entries) for each directory on the current path
    stack: List[Tuple[str, Iterator[os.DirEntry]]] = [
        (os.path.realpath(root), iter(_sorted_entries(root))),
    ]

    while stack:
        entry = next(stack[-1][1], None)
        if entry is None:
            stack.pop()
            continue

        try:
            is_dir = entry.is_dir()
        except OSError as exc:
            raise CatalogIOError(entry.path, exc.strerror or str(exc)) from exc

        if is_dir:
            real = os.path.realpath(entry.path)
            if any(real == open_dir for open_dir, _ in stack):
                log.warning("Skipping symlink cycle: %s -> %s", entry.path, real)
                continue
            stack.append((real, iter(_sorted_entries(entry.path))))
        elif is_video_file(entry.name, extensions):
            found.append((entry.path, video_extension(entry.name)))

    return found


# -----------------------------
# CATALOG
# -----------------------------
@dataclass(frozen=True)
class CatalogEntry:
    identifier: str
    path: str
    relpath: str
    extension: str


class Catalog:
    """
    One immutable catalog generation: identifier -> source path, in the
    order the builder produced the files.
    """

    def __init__(self, root: str, entries: Iterable[CatalogEntry] = (), generation: int = 0,
                 built_at: Optional[float] = None):
        self.root = root
        self.generation = generation
        self.built_at = built_at
        self.entries = tuple(entries)
        by_id = {}
        for entry in self.entries:
            if entry.identifier in by_id:
                raise ValueError(f"Duplicate identifier in catalog: {entry.identifier}")
            by_id[entry.identifier] = entry
        self._by_id = MappingProxyType(by_id)

    @classmethod
    def from_scan(cls, root: str, scanned: Iterable[Tuple[str, str]], generation: int = 0,
                  extensions: Iterable[str] = VIDEO_EXTENSIONS) -> "Catalog":
        """
        Number ``(path, extension)`` pairs in order. Raises ValueError for a
        path outside ``root`` or an extension that is not a recognized video
        extension of that path.
        """
        extensions = frozenset(extensions)
        entries = []
        # the sequence restarts at zero for every build
        for seq, (path, ext) in enumerate(scanned):
            if ext not in extensions or video_extension(path) != ext:
                raise ValueError(f"Not a recognized .{ext} video: {path}")
            rel = os.path.relpath(path, root)
            if rel in (os.curdir, os.pardir) or rel.startswith(os.pardir + os.sep) or os.path.isabs(rel):
                raise ValueError(f"Video is outside of {root}: {path}")
            rel = rel.replace(os.sep, "/")
            entries.append(CatalogEntry(f"{seq}.{ext}", path, rel, ext))
        return cls(root, entries, generation=generation, built_at=time.time())

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self.entries)

    def __contains__(self, identifier) -> bool:
        return identifier in self._by_id

    def __repr__(self) -> str:
        return f"<Catalog root={self.root!r} generation={self.generation} videos={len(self)}>"

    def identifiers(self) -> List[str]:
        return [e.identifier for e in self.entries]

    def get(self, identifier: str) -> Optional[CatalogEntry]:
        return self._by_id.get(identifier)

    def lookup(self, identifier: str) -> Optional[str]:
        entry = self._by_id.get(identifier)
        if entry is None:
            return None
        return entry.path


# -----------------------------
# STORE
# -----------------------------
class CatalogStore:
    """
    Shared holder of the live Catalog generation.

    Readers only take ``_lock`` long enough to read the reference. Builds
    run outside of it and the finished generation is swapped in under it.
    ``_reload_lock`` serializes reloads and replaces; a second reload waits
    for the first. Readers never touch it.
    """

    def __init__(self, root: str, extensions: Iterable[str] = VIDEO_EXTENSIONS):
        self._root = root
        self._extensions = frozenset(extensions)
        self._lock = threading.Lock()
        self._reload_lock = threading.RLock()
        self._catalog = Catalog(root)
        self._reloading = False

    @property
    def root(self) -> str:
        return self._root

    @property
    def extensions(self) -> frozenset:
        return self._extensions

    @property
    def reloading(self) -> bool:
        return self._reloading

    def snapshot(self) -> Catalog:
        with self._lock:
            return self._catalog

    current_snapshot = snapshot

    def lookup(self, identifier: str) -> Optional[str]:
        return self.snapshot().lookup(identifier)

    def replace(self, scanned: Iterable[Tuple[str, str]]) -> Catalog:
        with self._reload_lock:
            generation = self.snapshot().generation + 1
            catalog = Catalog.from_scan(self._root, scanned, generation=generation,
                                        extensions=self._extensions)
            for entry in catalog:
                log.info("Loading video: %s as %s", entry.path, entry.identifier)

            with self._lock:
                self._catalog = catalog
        return catalog

    def reload(self) -> Catalog:
        with self._reload_lock:
            self._reloading = True
            try:
                started = time.monotonic()
                log.info("Scanning %s for videos", self._root)
                scanned = scan_videos(self._root, self._extensions)
                catalog = self.replace(scanned)
            finally:
                self._reloading = False

        log.info(
            "Catalog generation %d ready: %d videos in %.2fs",
            catalog.generation, len(catalog), time.monotonic() - started,
        )
        return catalog

    # the initial build is a reload with nothing to fall back to
    load = reload


# -----------------------------
# LOOKUP
# -----------------------------
@dataclass(frozen=True)
class Resolution:
    path: str
    content_type: str


def resolve(source, identifier: str) -> Resolution:
    """
    Resolve ``identifier`` against a CatalogStore or a Catalog snapshot.
    Raises VideoNotFound for identifiers not in the live generation.
    """
    catalog = source.snapshot() if isinstance(source, CatalogStore) else source
    path = catalog.lookup(identifier)
    if path is None:
        raise VideoNotFound(identifier)
    return Resolution(path, f"video/{video_extension(identifier)}")
