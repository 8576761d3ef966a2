"""esbuild adapter: compiles one module graph into a single ESM bundle with a source map."""

import json
import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..utils.exceptions import CompileError
from .profiles import DevelopmentProfile, TransformProfile, TransformStep

logger = logging.getLogger(__name__)

# "✘ [ERROR] ..." / "▲ [WARNING] ..." (or "X [ERROR]" on terminals without unicode)
_DIAG_START = re.compile(r'^\S+ \[(ERROR|WARNING)\]')
_SUMMARY = re.compile(r'^\d+ (error|warning)s?( and \d+ (error|warning)s?)?$')


@dataclass(frozen=True)
class CompileOutput:
    """What a successful compile reports back besides the written files."""

    inputs: Tuple[Path, ...] = ()
    warnings: Tuple[str, ...] = ()


def parse_diagnostics(stderr: str) -> List[str]:
    """
    Split esbuild's stderr into one message per diagnostic.

    Args:
        stderr: Raw stderr text

    Returns:
        List of diagnostic blocks, in the order esbuild reported them
    """
    blocks: List[List[str]] = []
    current: Optional[List[str]] = None
    for line in stderr.splitlines():
        if _DIAG_START.match(line):
            current = [line.rstrip()]
            blocks.append(current)
        elif current is not None and line.strip() and not _SUMMARY.match(line.strip()):
            current.append(line.rstrip())

    if not blocks and stderr.strip():
        return [stderr.strip()]
    return ['\n'.join(block) for block in blocks]


class EsbuildCompiler:
    """Runs the esbuild executable for a single entry point."""

    def __init__(
        self,
        command: Sequence[str] = ('esbuild',),
        working_dir: Optional[Path] = None,
        target: str = "es2020"
    ):
        """
        Initialize the compiler.

        Args:
            command: esbuild argv prefix (e.g. ['npx', 'esbuild'])
            working_dir: Directory esbuild runs in; node_modules are resolved from here
            target: JavaScript language target
        """
        self.command = list(command)
        self.working_dir = working_dir or Path.cwd()
        self.target = target

    def command_for(
        self,
        entry: Path,
        outfile: Path,
        profile: TransformProfile,
        metafile: Optional[Path] = None
    ) -> List[str]:
        """Build the esbuild argv for one compile."""
        cmd = self.command + [
            str(entry),
            f'--outfile={outfile}',
            '--format=esm',
            '--sourcemap',
            f'--target={self.target}',
            '--log-level=warning',
            '--color=false',
        ]

        for step in profile.steps:
            if step is TransformStep.RESOLVE:
                cmd += ['--bundle', '--platform=browser']
            elif step is TransformStep.INTEROP:
                cmd.append('--main-fields=browser,module,main')
            elif step is TransformStep.SUBSTITUTE:
                for marker, value in profile.substitutions.items():
                    cmd.append(f'--define:{marker}={json.dumps(value)}')
            elif step is TransformStep.JSX:
                cmd.append('--jsx=automatic')
                if isinstance(profile, DevelopmentProfile) and profile.jsx_dev:
                    cmd.append('--jsx-dev')

        if metafile is not None:
            cmd.append(f'--metafile={metafile}')
        return cmd

    def compile(self, entry: Path, outfile: Path, profile: TransformProfile) -> CompileOutput:
        """
        Compile the graph rooted at entry into outfile and outfile.map.

        Args:
            entry: Entry module
            outfile: Bundle path to write
            profile: Transform profile for this target

        Returns:
            CompileOutput with the input files of the module graph

        Raises:
            CompileError: If esbuild cannot be launched or reports errors
        """
        metafile = outfile.with_name(outfile.name + '.meta.json')
        cmd = self.command_for(entry, outfile, profile, metafile)
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                cwd=self.working_dir,
                capture_output=True,
                text=True
            )
        except OSError as e:
            raise CompileError([f"Failed to launch {self.command[0]}: {e}"])

        diagnostics = parse_diagnostics(result.stderr or "")
        if result.returncode != 0:
            raise CompileError(diagnostics or [f"{self.command[0]} exited with status {result.returncode}"])

        inputs = self._read_inputs(metafile)
        metafile.unlink(missing_ok=True)
        return CompileOutput(inputs=inputs, warnings=tuple(diagnostics))

    def _read_inputs(self, metafile: Path) -> Tuple[Path, ...]:
        """Collect the on-disk input files listed in an esbuild metafile."""
        try:
            meta = json.loads(metafile.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read dependency graph from {metafile}: {e}")
            return ()

        inputs = []
        for key in meta.get('inputs', {}):
            path = (self.working_dir / key).resolve()
            if path.is_file():
                inputs.append(path)
        return tuple(inputs)
