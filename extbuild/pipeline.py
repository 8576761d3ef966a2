"""Top-level build orchestrator for the extension."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from .config import BUILD_COMMAND, DEV_COMMAND, Settings
from .modules.builder import BuildResult, BuildRunner, Compiler
from .modules.compiler import EsbuildCompiler
from .modules.mirror import AssetMirror, MirrorReport
from .modules.profiles import resolve_profile
from .modules.targets import AssetJob, AssetKind, BundleTarget
from .modules.watcher import LifecycleEvent, WatchEvent, WatchRunner, WatchSession

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str], None]


def declare_targets(src: Path, dist: Path) -> List[BundleTarget]:
    """The fixed set of bundles: two UI pages, the background worker and the content script."""
    return [
        BundleTarget('options', src / 'pages' / 'options' / 'app.tsx', dist / 'pages' / 'options' / 'main.js', True),
        BundleTarget('popup', src / 'pages' / 'popup' / 'app.tsx', dist / 'pages' / 'popup' / 'main.js', True),
        BundleTarget('background', src / 'background' / 'index.ts', dist / 'background' / 'index.js'),
        BundleTarget('content', src / 'content' / 'index.ts', dist / 'content' / 'index.js'),
    ]


def declare_asset_jobs(src: Path, public: Path, dist: Path) -> List[AssetJob]:
    """The fixed set of copied assets: manifest, HTML shells and the public/ tree."""
    return [
        AssetJob(src / 'manifest.json', dist),
        AssetJob(src / 'pages' / 'options' / 'index.html', dist / 'pages' / 'options'),
        AssetJob(src / 'pages' / 'popup' / 'index.html', dist / 'pages' / 'popup'),
        AssetJob(public, dist / 'public', AssetKind.DIRECTORY_TREE),
    ]


@dataclass
class BuildSummary:
    """Everything a production build produced: one result per target and per asset job."""

    node_env: str
    results: List[BuildResult] = field(default_factory=list)
    reports: List[MirrorReport] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.success for r in self.results) and all(r.ok for r in self.reports)

    @property
    def failed_targets(self) -> List[BuildResult]:
        return [r for r in self.results if not r.success]


class DevSession:
    """Handle on a running development watch: every target session and asset mirror."""

    def __init__(self, node_env: str, sessions: List[WatchSession], mirrors: List[AssetMirror]):
        self.node_env = node_env
        self.sessions = sessions
        self.mirrors = mirrors
        self._stopped = threading.Event()

    def wait(self, poll_interval: float = 0.5) -> None:
        """Block until stop() is called (or the caller is interrupted)."""
        while not self._stopped.wait(timeout=poll_interval):
            pass

    def stop(self) -> None:
        if self._stopped.is_set():
            return
        for session in self.sessions:
            session.stop()
        for mirror in self.mirrors:
            mirror.stop()
        self._stopped.set()
        logger.info("Stopped all watchers")


class ExtensionBuildPipeline:
    """Builds every target and mirrors every asset, once or continuously."""

    def __init__(
        self,
        settings: Settings,
        compiler: Optional[Compiler] = None,
        progress_callback: Optional[ProgressCallback] = None,
        subscribe_targets=None,
        subscribe_assets=None
    ):
        """
        Initialize the pipeline.

        Args:
            settings: Build settings
            compiler: Compiler for bundles (default: esbuild from settings)
            progress_callback: Optional callback(stage, message) for progress lines
            subscribe_targets: Optional subscription factory for target watches
            subscribe_assets: Optional subscription factory for asset watches
        """
        self.settings = settings
        self.compiler = compiler or EsbuildCompiler(
            command=settings.esbuild_argv,
            working_dir=settings.project_root,
            target=settings.esbuild_target
        )
        self.builder = BuildRunner(self.compiler)
        self.targets = declare_targets(settings.src_path, settings.dist_path)
        self.asset_jobs = declare_asset_jobs(settings.src_path, settings.public_path, settings.dist_path)
        self.progress_callback = progress_callback
        self._subscribe_targets = subscribe_targets
        self._subscribe_assets = subscribe_assets

    def _progress(self, stage: str, message: str) -> None:
        logger.debug(f"[{stage}] {message}")
        if self.progress_callback:
            self.progress_callback(stage, message)

    def _report_result(self, result: BuildResult) -> None:
        if result.success:
            self._progress("DONE", f"Build complete for {result.output} ({result.duration:.2f}s)")
            for warning in result.diagnostics:
                logger.warning(f"{result.target.name}: {warning}")
        else:
            self._progress("ERROR", f"Build error for {result.output}:\n" + "\n".join(result.diagnostics))

    def _build_target(self, target: BundleTarget, node_env: str) -> BuildResult:
        self._progress("BUILD", f"Building {target.output}...")
        result = self.builder.run(target, resolve_profile(target, node_env))
        self._report_result(result)
        return result

    def _mirror_asset(self, job: AssetJob) -> MirrorReport:
        report = AssetMirror(job, debounce=self.settings.debounce_seconds).mirror_once()
        if report.ok:
            self._progress("COPY", f"Copied {job.source} -> {job.destination}")
        else:
            self._progress("ERROR", f"{len(report.failures)} copy failure(s) for {job.source}")
        return report

    def build(self, node_env: Optional[str] = None) -> BuildSummary:
        """
        Run one build pass per target and one mirror pass per asset job, concurrently.

        A failing target or copy never stops the others; every pass settles before
        this returns.

        Args:
            node_env: Build mode (default: from settings, 'production' when unset)

        Returns:
            BuildSummary with results in declaration order
        """
        node_env = node_env or self.settings.mode_for(BUILD_COMMAND)
        summary = BuildSummary(node_env=node_env)

        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
            target_futures = {
                executor.submit(self._build_target, target, node_env): target
                for target in self.targets
            }
            job_futures = {
                executor.submit(self._mirror_asset, job): job
                for job in self.asset_jobs
            }

            results = {}
            for future in as_completed(target_futures):
                target = target_futures[future]
                try:
                    results[target] = future.result()
                except Exception as e:
                    logger.exception(f"Build of {target.name} crashed")
                    results[target] = BuildResult(target=target, success=False, diagnostics=(str(e),))

            reports = {}
            for future in as_completed(job_futures):
                job = job_futures[future]
                try:
                    reports[job] = future.result()
                except Exception as e:
                    logger.exception(f"Mirroring {job.source} crashed")
                    reports[job] = MirrorReport(job=job, failures=[(job.source, job.destination, str(e))])

        summary.results = [results[t] for t in self.targets]
        summary.reports = [reports[j] for j in self.asset_jobs]
        return summary

    def _on_watch_event(self, event: WatchEvent) -> None:
        if event.kind is LifecycleEvent.PASS_STARTED:
            self._progress("BUILD", f"Building {event.target.output}...")
        elif event.kind in (LifecycleEvent.PASS_SUCCEEDED, LifecycleEvent.PASS_FAILED):
            self._report_result(event.result)
        elif event.kind is LifecycleEvent.WATCH_IDLE:
            self._progress("WATCH", f"Watching for changes in {event.target.entry}...")

    def develop(self, node_env: Optional[str] = None) -> DevSession:
        """
        Start one watch session per target and one watching mirror per asset job.

        Args:
            node_env: Build mode (default: from settings, 'development' when unset)

        Returns:
            DevSession; call wait() to stay resident and stop() to shut down
        """
        node_env = node_env or self.settings.mode_for(DEV_COMMAND)
        runner = WatchRunner(
            self.builder,
            subscribe=self._subscribe_targets,
            on_event=self._on_watch_event,
            debounce=self.settings.debounce_seconds
        )

        sessions = [runner.start(target, resolve_profile(target, node_env)) for target in self.targets]
        mirrors = [
            AssetMirror(job, debounce=self.settings.debounce_seconds, subscribe=self._subscribe_assets).watch()
            for job in self.asset_jobs
        ]
        return DevSession(node_env, sessions, mirrors)
