"""Persistent watch-and-rebuild sessions, one per bundle target."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional, Set, Tuple

from ..utils.exceptions import WatchError
from ..utils.fs_events import ChangeSubscription, watch_files
from .builder import BuildResult, BuildRunner
from .profiles import TransformProfile
from .targets import BundleTarget

logger = logging.getLogger(__name__)


class WatchState(Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    RUNNING_WITH_PENDING_REBUILD = 'running_with_pending_rebuild'
    STOPPED = 'stopped'


class RebuildStateMachine:
    """
    In-flight / pending-rebuild bookkeeping for one target.

    IDLE --change--> RUNNING --change--> RUNNING_WITH_PENDING_REBUILD
    RUNNING --pass completed--> IDLE
    RUNNING_WITH_PENDING_REBUILD --pass completed--> RUNNING (exactly one more pass)
    any --stop--> STOPPED
    """

    def __init__(self):
        self._state = WatchState.IDLE
        self._lock = threading.Lock()

    @property
    def state(self) -> WatchState:
        return self._state

    def change_received(self) -> bool:
        """Record a change notification. Returns True when a pass must start now."""
        with self._lock:
            if self._state is WatchState.IDLE:
                self._state = WatchState.RUNNING
                return True
            if self._state is WatchState.RUNNING:
                self._state = WatchState.RUNNING_WITH_PENDING_REBUILD
            return False

    def pass_completed(self) -> bool:
        """Record the end of a pass. Returns True when a follow-up pass must start."""
        with self._lock:
            if self._state is WatchState.RUNNING_WITH_PENDING_REBUILD:
                self._state = WatchState.RUNNING
                return True
            if self._state is WatchState.RUNNING:
                self._state = WatchState.IDLE
            return False

    def stop(self) -> None:
        with self._lock:
            self._state = WatchState.STOPPED


class LifecycleEvent(Enum):
    PASS_STARTED = 'pass_started'
    PASS_SUCCEEDED = 'pass_succeeded'
    PASS_FAILED = 'pass_failed'
    WATCH_IDLE = 'watch_idle'


@dataclass(frozen=True)
class WatchEvent:
    kind: LifecycleEvent
    target: BundleTarget
    result: Optional[BuildResult] = None

    @property
    def diagnostics(self) -> Tuple[str, ...]:
        return self.result.diagnostics if self.result else ()


Subscribe = Callable[[Iterable[Path]], ChangeSubscription]
EventCallback = Callable[[WatchEvent], None]


class WatchSession:
    """Watches one target's dependency graph and rebuilds it on change."""

    def __init__(
        self,
        target: BundleTarget,
        profile: TransformProfile,
        builder: BuildRunner,
        subscribe: Subscribe,
        on_event: Optional[EventCallback] = None
    ):
        self.target = target
        self.profile = profile
        self.builder = builder
        self.state = RebuildStateMachine()
        self.passes = 0
        self.last_result: Optional[BuildResult] = None
        self.failed = False
        self.idle_announced = False

        self._subscribe = subscribe
        self._on_event = on_event
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f'build-{target.name}')
        self._lock = threading.Lock()
        self._subscription: Optional[ChangeSubscription] = None
        self._pump: Optional[threading.Thread] = None
        self._watched: Set[Path] = set()

    def start(self) -> 'WatchSession':
        """Kick off the initial pass; watching begins once it completes."""
        self.notify()
        return self

    def notify(self) -> None:
        """Handle a change notification for this target."""
        if self.state.change_received():
            self._executor.submit(self._drain)

    def stop(self) -> None:
        """Close the subscription, drop any pending rebuild and wait for an in-flight pass."""
        self.state.stop()
        with self._lock:
            subscription = self._subscription
        if subscription is not None:
            subscription.close()
        self._executor.shutdown(wait=True)
        if self._pump is not None and self._pump is not threading.current_thread():
            self._pump.join(timeout=5)

    def _drain(self) -> None:
        while True:
            self._run_pass()
            if not self.state.pass_completed():
                return

    def _run_pass(self) -> None:
        self._emit(LifecycleEvent.PASS_STARTED)
        result = self.builder.run(self.target, self.profile)
        self.passes += 1
        self.last_result = result
        if result.success:
            self._emit(LifecycleEvent.PASS_SUCCEEDED, result)
        else:
            self._emit(LifecycleEvent.PASS_FAILED, result)

        self._follow(result)

        if not self.idle_announced:
            self._emit(LifecycleEvent.WATCH_IDLE)
            self.idle_announced = True

    def _follow(self, result: BuildResult) -> None:
        """Point the subscription at the dependency graph of the latest pass."""
        if result.inputs:
            paths = set(result.inputs)
        else:
            paths = set(self._watched)
        paths.add(self.target.entry.resolve())

        with self._lock:
            if self.state.state is WatchState.STOPPED or self.failed:
                return
            if self._subscription is None:
                try:
                    self._subscription = self._subscribe(paths)
                except WatchError as e:
                    self.failed = True
                    logger.error(f"Stopped watching {self.target.entry}: {e}")
                    return
                self._pump = threading.Thread(
                    target=self._pump_changes,
                    args=(self._subscription,),
                    name=f'watch-{self.target.name}',
                    daemon=True
                )
                self._pump.start()
            elif paths != self._watched:
                try:
                    self._subscription.update(paths)
                except WatchError as e:
                    # The previous file set stays watched.
                    logger.error(f"Cannot update watched files for {self.target.entry}, "
                                 f"keeping {len(self._watched)} previous file(s): {e}")
                    return
            self._watched = paths

    def _pump_changes(self, subscription: ChangeSubscription) -> None:
        for batch in subscription:
            logger.debug(f"{self.target.name}: {len(batch.paths)} changed file(s)")
            self.notify()

    def _emit(self, kind: LifecycleEvent, result: Optional[BuildResult] = None) -> None:
        if self._on_event is not None:
            self._on_event(WatchEvent(kind=kind, target=self.target, result=result))


class WatchRunner:
    """Starts WatchSessions that share a BuildRunner."""

    def __init__(
        self,
        builder: BuildRunner,
        subscribe: Optional[Subscribe] = None,
        on_event: Optional[EventCallback] = None,
        debounce: float = 0.1
    ):
        self.builder = builder
        self.subscribe = subscribe or (lambda paths: watch_files(paths, debounce=debounce))
        self.on_event = on_event

    def start(self, target: BundleTarget, profile: TransformProfile) -> WatchSession:
        """
        Start watching a target.

        Args:
            target: Target to build and watch
            profile: Transform profile used for every pass

        Returns:
            Running WatchSession
        """
        session = WatchSession(target, profile, self.builder, self.subscribe, self.on_event)
        return session.start()
