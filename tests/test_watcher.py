"""Tests for watch sessions and the rebuild state machine."""


import pytest

from extbuild.modules.builder import BuildRunner
from extbuild.modules.profiles import resolve_profile
from extbuild.modules.targets import BundleTarget
from extbuild.modules.watcher import (
    LifecycleEvent,
    RebuildStateMachine,
    WatchRunner,
    WatchState,
)
from extbuild.utils.exceptions import WatchError

from .conftest import FakeSubscription, wait_for


class TestRebuildStateMachine:
    """Transitions of the per-target in-flight / pending state."""

    def test_first_change_starts_a_pass(self):
        machine = RebuildStateMachine()

        assert machine.change_received() is True
        assert machine.state is WatchState.RUNNING

    def test_changes_while_running_collapse_to_one_pending(self):
        machine = RebuildStateMachine()
        machine.change_received()

        assert [machine.change_received() for _ in range(5)] == [False] * 5
        assert machine.state is WatchState.RUNNING_WITH_PENDING_REBUILD
        assert machine.pass_completed() is True
        assert machine.state is WatchState.RUNNING
        assert machine.pass_completed() is False
        assert machine.state is WatchState.IDLE

    def test_stop_discards_pending(self):
        machine = RebuildStateMachine()
        machine.change_received()
        machine.change_received()
        machine.stop()

        assert machine.pass_completed() is False
        assert machine.change_received() is False
        assert machine.state is WatchState.STOPPED


@pytest.fixture
def target(project):
    return BundleTarget('background', project / 'src/background/index.ts', project / 'dist/background/index.js')


class _Harness:
    def __init__(self, compiler, subscribe_error=None):
        self.events = []
        self.subscriptions = []
        self.subscribe_error = subscribe_error
        self.runner = WatchRunner(BuildRunner(compiler), subscribe=self.subscribe, on_event=self.events.append)

    def subscribe(self, paths):
        if self.subscribe_error:
            raise self.subscribe_error
        subscription = FakeSubscription(paths)
        self.subscriptions.append(subscription)
        return subscription

    def kinds(self):
        return [e.kind for e in self.events]


def test_initial_pass_then_idle(target, fake_compiler):
    harness = _Harness(fake_compiler)
    session = harness.runner.start(target, resolve_profile(target, 'development'))
    try:
        wait_for(lambda: session.idle_announced)
        assert harness.kinds() == [
            LifecycleEvent.PASS_STARTED,
            LifecycleEvent.PASS_SUCCEEDED,
            LifecycleEvent.WATCH_IDLE,
        ]
        assert harness.events[0].target.output == target.output
        assert target.output.is_file()
        assert harness.subscriptions[0].paths == {target.entry.resolve()}
    finally:
        session.stop()


def test_change_notification_rebuilds(target, fake_compiler):
    harness = _Harness(fake_compiler)
    session = harness.runner.start(target, resolve_profile(target, 'development'))
    try:
        wait_for(lambda: session.idle_announced)
        target.entry.write_text('console.log("v2");')
        harness.subscriptions[0].push(target.entry)

        wait_for(lambda: session.passes == 2 and session.state.state is WatchState.IDLE)
        assert 'v2' in target.output.read_text()
        assert harness.kinds().count(LifecycleEvent.WATCH_IDLE) == 1
    finally:
        session.stop()


def test_burst_during_pass_coalesces_into_one_follow_up(target, fake_compiler):
    harness = _Harness(fake_compiler)
    session = harness.runner.start(target, resolve_profile(target, 'development'))
    try:
        wait_for(lambda: session.idle_announced)
        fake_compiler.hold()
        session.notify()
        wait_for(lambda: len(fake_compiler.calls) == 2)

        for _ in range(10):
            session.notify()
        assert session.state.state is WatchState.RUNNING_WITH_PENDING_REBUILD

        fake_compiler.release()
        wait_for(lambda: session.state.state is WatchState.IDLE)
        assert len(fake_compiler.calls) == 3
        assert session.passes == 3
    finally:
        fake_compiler.release()
        session.stop()


def test_failed_pass_keeps_session_alive(target, fake_compiler):
    harness = _Harness(fake_compiler)
    session = harness.runner.start(target, resolve_profile(target, 'development'))
    try:
        wait_for(lambda: session.idle_announced)
        target.entry.write_text('SYNTAX ERROR')
        session.notify()
        wait_for(lambda: LifecycleEvent.PASS_FAILED in harness.kinds())
        failed = next(e for e in harness.events if e.kind is LifecycleEvent.PASS_FAILED)
        assert failed.diagnostics

        target.entry.write_text('console.log("fixed");')
        session.notify()
        wait_for(lambda: session.passes == 3 and session.state.state is WatchState.IDLE)
        assert session.last_result.success
        assert 'fixed' in target.output.read_text()
    finally:
        session.stop()


def test_subscription_follows_dependency_graph(target, fake_compiler, project):
    util = project / 'src/background/util.ts'
    util.write_text('export const x = 1;')
    harness = _Harness(fake_compiler)
    session = harness.runner.start(target, resolve_profile(target, 'development'))
    try:
        wait_for(lambda: session.idle_announced)
        target.entry.write_text('// dep: util.ts\nimport "./util";')
        session.notify()
        wait_for(lambda: session.passes == 2 and session.state.state is WatchState.IDLE)

        subscription = harness.subscriptions[0]
        assert subscription.updates[-1] == {target.entry.resolve(), util.resolve()}
    finally:
        session.stop()


def test_subscription_failure_only_affects_that_session(target, fake_compiler):
    harness = _Harness(fake_compiler, subscribe_error=WatchError('no inotify'))
    session = harness.runner.start(target, resolve_profile(target, 'development'))
    try:
        wait_for(lambda: session.idle_announced)
        assert session.failed
        assert session.last_result.success
    finally:
        session.stop()


def test_stop_closes_subscription_and_ignores_later_changes(target, fake_compiler):
    harness = _Harness(fake_compiler)
    session = harness.runner.start(target, resolve_profile(target, 'development'))
    wait_for(lambda: session.idle_announced)

    session.stop()
    session.notify()

    assert harness.subscriptions[0].closed
    assert session.state.state is WatchState.STOPPED
    assert session.passes == 1


class _FlakySubscription(FakeSubscription):
    def update(self, paths):
        raise WatchError('directory vanished')


def test_failed_graph_update_keeps_previous_watch(target, fake_compiler, project):
    (project / 'src/background/util.ts').write_text('export const x = 1;')
    subscriptions = []

    def subscribe(paths):
        subscriptions.append(_FlakySubscription(paths))
        return subscriptions[-1]

    session = WatchRunner(BuildRunner(fake_compiler), subscribe=subscribe).start(
        target, resolve_profile(target, 'development'))
    try:
        wait_for(lambda: session.idle_announced)
        target.entry.write_text('// dep: util.ts\nimport "./util";')
        session.notify()
        wait_for(lambda: session.passes == 2 and session.state.state is WatchState.IDLE)
        assert not session.failed

        target.entry.write_text('console.log("v3");')
        subscriptions[0].push(target.entry)
        wait_for(lambda: session.passes == 3 and session.state.state is WatchState.IDLE)
        assert 'v3' in target.output.read_text()
        assert len(subscriptions) == 1
    finally:
        session.stop()
