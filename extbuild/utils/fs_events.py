"""Filesystem change subscriptions backed by watchdog.

A subscription watches either a set of files or a whole directory tree and is
consumed as an iterator of ChangeBatch objects. Raw events are batched over a
short quiet window so one editor save (which usually fires several low-level
events) produces one batch. Iteration ends once the subscription is closed.
"""

import logging
import os
import queue
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, Iterator, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .exceptions import WatchError

logger = logging.getLogger(__name__)

# Reading a file (opened / closed_no_write) must not count as a change,
# otherwise copying a watched file would retrigger itself.
CHANGE_EVENT_TYPES = {'created', 'modified', 'moved', 'deleted', 'closed'}

_CLOSED = object()


@dataclass(frozen=True)
class ChangeBatch:
    """Paths touched during one quiet window."""

    paths: FrozenSet[Path]


class _Forwarder(FileSystemEventHandler):
    def __init__(self, subscription: 'ChangeSubscription'):
        super().__init__()
        self._subscription = subscription

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in CHANGE_EVENT_TYPES:
            return
        paths = [os.fsdecode(event.src_path)]
        dest_path = getattr(event, 'dest_path', '')
        if dest_path:
            paths.append(os.fsdecode(dest_path))
        self._subscription._offer([Path(p) for p in paths])


class ChangeSubscription:
    """Live watch on a file set or a directory tree."""

    def __init__(self, debounce: float = 0.1, observer_factory=Observer):
        self.debounce = debounce
        self._observer = observer_factory()
        self._handler = _Forwarder(self)
        self._queue: 'queue.Queue' = queue.Queue()
        # Guards (re)scheduling only; must not be taken from handler callbacks
        # (watchdog dispatches under its own lock).
        self._schedule_lock = threading.Lock()
        self._files: Optional[Set[Path]] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def watch_files(self, paths: Iterable[Path]) -> None:
        """
        (Re)point the subscription at an exact set of files.

        When none of the files' directories exist (e.g. mid checkout) the current
        schedule is left untouched and WatchError is raised.
        """
        files = {Path(p).resolve() for p in paths}
        directories = []
        for directory in sorted({f.parent for f in files}):
            if directory.is_dir():
                directories.append(directory)
            else:
                logger.debug(f"Skipping missing directory {directory}")
        if not directories:
            raise WatchError(f"None of the watched files exist: {sorted(str(f) for f in files)}")

        with self._schedule_lock:
            self._files = files
            self._observer.unschedule_all()
            scheduled = 0
            for directory in directories:
                try:
                    self._observer.schedule(self._handler, str(directory), recursive=False)
                    scheduled += 1
                except OSError as e:
                    logger.warning(f"Cannot watch {directory}: {e}")
            if not scheduled:
                raise WatchError(f"None of the watched files exist: {sorted(str(f) for f in files)}")

    def watch_tree(self, root: Path) -> None:
        """Watch every change anywhere under root."""
        root = Path(root).resolve()
        if not root.is_dir():
            raise WatchError(f"Cannot watch missing directory {root}")
        with self._schedule_lock:
            self._files = None
            self._observer.unschedule_all()
            try:
                self._observer.schedule(self._handler, str(root), recursive=True)
            except OSError as e:
                raise WatchError(f"Cannot watch {root}: {e}") from e

    def update(self, paths: Iterable[Path]) -> None:
        """Replace the watched file set, e.g. after a rebuild changed the dependency graph."""
        if not self._closed:
            self.watch_files(paths)

    def start(self) -> 'ChangeSubscription':
        try:
            self._observer.start()
        except OSError as e:
            raise WatchError(f"Failed to start filesystem observer: {e}") from e
        return self

    def close(self) -> None:
        """Stop watching; pending, not yet yielded changes are discarded."""
        if self._closed:
            return
        self._closed = True
        self._observer.stop()
        if self._observer.is_alive():
            self._observer.join(timeout=5)
        self._queue.put(_CLOSED)

    def _offer(self, paths: Iterable[Path]) -> None:
        if self._closed:
            return
        files = self._files
        relevant = [p for p in paths if files is None or p in files]
        for path in relevant:
            self._queue.put(path)

    def __iter__(self) -> Iterator[ChangeBatch]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            paths = {item}
            deadline = time.monotonic() + self.debounce
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                try:
                    item = self._queue.get(timeout=remaining)
                except queue.Empty:
                    break
                if item is _CLOSED:
                    return
                paths.add(item)
            yield ChangeBatch(frozenset(paths))


def watch_files(paths: Iterable[Path], debounce: float = 0.1) -> ChangeSubscription:
    """
    Subscribe to changes of specific files.

    Args:
        paths: Files to watch; their parent directories are observed non-recursively
        debounce: Quiet window in seconds used to batch events

    Returns:
        Started ChangeSubscription

    Raises:
        WatchError: If nothing could be watched or the observer fails to start
    """
    subscription = ChangeSubscription(debounce=debounce)
    subscription.watch_files(paths)
    return subscription.start()


def watch_tree(root: Path, debounce: float = 0.1) -> ChangeSubscription:
    """Subscribe to recursive changes under a directory."""
    subscription = ChangeSubscription(debounce=debounce)
    subscription.watch_tree(root)
    return subscription.start()
