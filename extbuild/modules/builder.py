"""Single compile-and-emit pass for one bundle target."""

import json
import logging
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Tuple

from ..utils.exceptions import CompileError
from .compiler import CompileOutput
from .profiles import TransformProfile
from .targets import BundleTarget

logger = logging.getLogger(__name__)


class Compiler(Protocol):
    def compile(self, entry: Path, outfile: Path, profile: TransformProfile) -> CompileOutput:
        ...


@dataclass(frozen=True)
class BuildResult:
    """Outcome of one build pass. Used for logging and failure signaling only."""

    target: BundleTarget
    success: bool
    diagnostics: Tuple[str, ...] = ()
    sourcemap_emitted: bool = False
    inputs: Tuple[Path, ...] = ()
    duration: float = 0.0

    @property
    def output(self) -> Path:
        return self.target.output


def relocate_sourcemap(map_path: Path, compiled_in: Path, emitted_in: Path) -> None:
    """
    Rewrite a source map's relative `sources` for a bundle moved to another directory.

    Args:
        map_path: Map file to rewrite in place
        compiled_in: Directory the compiler wrote the bundle to
        emitted_in: Directory the bundle and map end up in
    """
    data = json.loads(map_path.read_text(encoding='utf-8'))
    sources = data.get('sources')
    if not sources or data.get('sourceRoot'):
        return

    relocated = []
    for source in sources:
        if not source or '://' in source or os.path.isabs(source):
            relocated.append(source)
            continue
        absolute = os.path.normpath(os.path.join(os.path.abspath(compiled_in), source))
        relocated.append(Path(os.path.relpath(absolute, os.path.abspath(emitted_in))).as_posix())

    data['sources'] = relocated
    map_path.write_text(json.dumps(data), encoding='utf-8')


class BuildRunner:
    """Compiles a target through a Compiler and emits the bundle plus its source map."""

    def __init__(self, compiler: Compiler, staging_root: Optional[Path] = None):
        """
        Initialize the runner.

        Args:
            compiler: Compiler used for the module graph
            staging_root: Parent for per-pass staging directories (default: system temp)
        """
        self.compiler = compiler
        self.staging_root = staging_root

    def run(self, target: BundleTarget, profile: TransformProfile) -> BuildResult:
        """
        Run one complete compile pass.

        Never raises: every failure is returned as a BuildResult with success=False.
        The bundle and map are compiled into a staging directory and only moved into
        place when the compile succeeded, so a failed pass writes nothing.

        Args:
            target: Target to build
            profile: Transform profile for this pass

        Returns:
            BuildResult for the pass
        """
        started = time.monotonic()

        def failed(*diagnostics: str) -> BuildResult:
            return BuildResult(
                target=target,
                success=False,
                diagnostics=tuple(diagnostics),
                duration=time.monotonic() - started
            )

        if not target.entry.is_file():
            return failed(f"Entry point not found: {target.entry}")

        try:
            with tempfile.TemporaryDirectory(prefix='extbuild-', dir=self.staging_root) as staging:
                staged = Path(staging) / target.output.name
                try:
                    output = self.compiler.compile(target.entry, staged, profile)
                except CompileError as e:
                    return failed(*e.diagnostics)

                staged_map = staged.with_name(staged.name + '.map')
                if not staged.is_file():
                    return failed(f"Compiler produced no bundle for {target.entry}")

                sourcemap_emitted = staged_map.is_file()
                if sourcemap_emitted:
                    relocate_sourcemap(staged_map, Path(staging), target.output.parent)

                # Map moves last; a failed bundle move leaves the previous pair in place.
                target.output.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(staged), str(target.output))
                if sourcemap_emitted:
                    shutil.move(str(staged_map), str(target.sourcemap))
        except Exception as e:
            logger.exception(f"Unexpected error while building {target.output}")
            return failed(f"{type(e).__name__}: {e}")

        return BuildResult(
            target=target,
            success=True,
            diagnostics=output.warnings,
            sourcemap_emitted=sourcemap_emitted,
            inputs=output.inputs,
            duration=time.monotonic() - started
        )
