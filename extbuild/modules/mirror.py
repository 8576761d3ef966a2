"""Asset mirroring: copy a single file or a directory tree into the output tree."""

import logging
import os
import shutil
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..utils.exceptions import WatchError
from ..utils.fs_events import ChangeSubscription, watch_files, watch_tree
from .targets import AssetJob, AssetKind

logger = logging.getLogger(__name__)


@dataclass
class MirrorReport:
    """Result of one mirror pass."""

    job: AssetJob
    copied: List[Path] = field(default_factory=list)
    failures: List[Tuple[Path, Path, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class AssetMirror:
    """
    Mirrors one AssetJob into the output tree.

    Every copy is best-effort: a failure is logged with its source and destination
    and recorded in the report, and the remaining copies of the pass still run.
    Files deleted from a source tree are not removed from the destination.
    """

    def __init__(
        self,
        job: AssetJob,
        debounce: float = 0.1,
        subscribe: Optional[Callable[[AssetJob], ChangeSubscription]] = None
    ):
        self.job = job
        self.debounce = debounce
        self.passes = 0
        self.failed = False
        self._subscribe = subscribe or self._default_subscription
        self._subscription: Optional[ChangeSubscription] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._stopped = False

    def _default_subscription(self, job: AssetJob) -> ChangeSubscription:
        if job.kind is AssetKind.DIRECTORY_TREE:
            return watch_tree(job.source, debounce=self.debounce)
        return watch_files([job.source], debounce=self.debounce)

    def mirror_once(self) -> MirrorReport:
        """Run one complete mirror pass."""
        report = MirrorReport(job=self.job)

        try:
            self.job.destination_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create directory {self.job.destination_dir}: {e}")
            report.failures.append((self.job.source, self.job.destination_dir, str(e)))
        else:
            if self.job.kind is AssetKind.DIRECTORY_TREE:
                self._copy_tree(self.job.source, self.job.destination_dir, report)
            else:
                self._copy_file(self.job.source, self.job.destination, report)

        self.passes += 1
        return report

    def _copy_tree(self, src: Path, dest: Path, report: MirrorReport) -> None:
        try:
            entries = sorted(os.scandir(src), key=lambda e: e.name)
        except OSError as e:
            logger.error(f"Failed to read directory {src}: {e}")
            report.failures.append((src, dest, str(e)))
            return

        for entry in entries:
            src_path = Path(entry.path)
            dest_path = dest / entry.name
            try:
                is_dir = entry.is_dir()
            except OSError as e:
                logger.error(f"Failed to get stats for {src_path}: {e}")
                report.failures.append((src_path, dest_path, str(e)))
                continue

            if is_dir:
                self._copy_tree(src_path, dest_path, report)
            else:
                self._copy_file(src_path, dest_path, report)

    def _copy_file(self, src: Path, dest: Path, report: MirrorReport) -> None:
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, dest)
        except OSError as e:
            logger.error(f"Failed to copy file {src} to {dest}: {e}")
            report.failures.append((src, dest, str(e)))
            return
        logger.info(f"Copied file to {dest}")
        report.copied.append(dest)

    def watch(self) -> 'AssetMirror':
        """Subscribe to the source, copy once, then re-mirror on every change (in the background)."""
        self._thread = threading.Thread(
            target=self._watch_loop,
            name=f'mirror-{self.job.source.name}',
            daemon=True
        )
        self._thread.start()
        return self

    def _watch_loop(self) -> None:
        subscription = None
        try:
            subscription = self._subscribe(self.job)
        except WatchError as e:
            self.failed = True
            logger.error(f"Cannot watch {self.job.source}: {e}")

        with self._lock:
            self._subscription = subscription
            if self._stopped:
                if subscription is not None:
                    subscription.close()
                return

        self.mirror_once()
        if subscription is None:
            return

        for _batch in subscription:
            logger.info(f"Detected change in {self.job.source}")
            self.mirror_once()

    def stop(self) -> None:
        """Close the subscription and wait for an in-flight mirror pass."""
        with self._lock:
            self._stopped = True
            subscription = self._subscription
        if subscription is not None:
            subscription.close()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
