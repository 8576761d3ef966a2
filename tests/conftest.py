"""Shared fixtures: a fake compiler, fake change subscriptions and a sample project tree."""

import json
import os
import queue
import threading
import time
from pathlib import Path

import pytest

from extbuild.config import Settings
from extbuild.modules.compiler import CompileOutput
from extbuild.utils.exceptions import CompileError
from extbuild.utils.fs_events import ChangeBatch


class FakeCompiler:
    """
    Writes a deterministic bundle and map for every entry.

    Entries containing 'SYNTAX ERROR' fail. Lines of the form '// dep: <path>'
    are reported as extra graph inputs (relative to the entry). hold()/release()
    block compiles so tests can act while a pass is in flight. Map sources are
    relative to the directory the bundle is written to, as esbuild writes them.
    """

    def __init__(self):
        self.calls = []
        self._gate = threading.Event()
        self._gate.set()
        self._lock = threading.Lock()

    def hold(self):
        self._gate.clear()

    def release(self):
        self._gate.set()

    def compile(self, entry, outfile, profile):
        with self._lock:
            self.calls.append((entry, profile))
        self._gate.wait(timeout=10)

        source = entry.read_text(encoding='utf-8')
        if 'SYNTAX ERROR' in source:
            raise CompileError([f"{entry}:1:0: ERROR: Unexpected token"])

        inputs = [entry.resolve()]
        for line in source.splitlines():
            if line.startswith('// dep: '):
                inputs.append((entry.parent / line[len('// dep: '):].strip()).resolve())

        body = source
        for marker, value in profile.substitutions.items():
            body = body.replace(marker, f'"{value}"')
        outfile.write_text(f"// mode={profile.mode.value} jsx={profile.jsx}\n{body}\n"
                           f"//# sourceMappingURL={outfile.name}.map\n", encoding='utf-8')
        sources = [os.path.relpath(path, outfile.parent) for path in inputs]
        outfile.with_name(outfile.name + '.map').write_text(
            json.dumps({'version': 3, 'sources': sources, 'mappings': ''}), encoding='utf-8')
        return CompileOutput(inputs=tuple(inputs))


class FakeSubscription:
    """In-memory stand-in for ChangeSubscription; tests push batches by hand."""

    def __init__(self, paths=()):
        self.paths = set(paths)
        self.updates = []
        self.closed = False
        self._queue = queue.Queue()

    def push(self, *paths):
        self._queue.put(ChangeBatch(frozenset(Path(p) for p in paths)))

    def update(self, paths):
        self.paths = set(paths)
        self.updates.append(set(paths))

    def close(self):
        self.closed = True
        self._queue.put(None)

    def __iter__(self):
        while True:
            item = self._queue.get()
            if item is None:
                return
            yield item


def wait_for(predicate, timeout=5.0, interval=0.01):
    """Poll until predicate() is truthy; fail the test on timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(interval)
    pytest.fail(f"Timed out after {timeout}s waiting for condition")


@pytest.fixture(autouse=True)
def _clean_node_env(monkeypatch):
    monkeypatch.delenv('NODE_ENV', raising=False)


@pytest.fixture
def fake_compiler():
    return FakeCompiler()


@pytest.fixture
def project(tmp_path):
    """Create a sample extension project with every declared entry and asset."""
    root = tmp_path / "project"
    src = root / "src"
    files = {
        src / "manifest.json": '{"manifest_version": 3, "name": "demo"}',
        src / "pages" / "options" / "app.tsx": 'export default () => <div>{process.env.NODE_ENV}</div>;',
        src / "pages" / "options" / "index.html": '<script type="module" src="main.js"></script>',
        src / "pages" / "popup" / "app.tsx": 'export default () => <span>popup</span>;',
        src / "pages" / "popup" / "index.html": '<script type="module" src="main.js"></script>',
        src / "background" / "index.ts": 'chrome.runtime.onInstalled.addListener(() => {});',
        src / "content" / "index.ts": 'console.log("content");',
        root / "public" / "icons" / "icon16.png": 'PNG16',
        root / "public" / "icons" / "icon48.png": 'PNG48',
        root / "public" / "robots.txt": 'User-agent: *',
    }
    for path, content in files.items():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding='utf-8')
    return root


@pytest.fixture
def settings(project):
    return Settings(project_root=project, node_env=None, debounce_seconds=0.05, max_workers=4)
