"""Declarative descriptors for bundle targets and asset copy jobs."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


@dataclass(frozen=True)
class BundleTarget:
    """One independent entry-point-to-bundle build unit."""

    name: str
    entry: Path
    output: Path
    uses_ui_transform: bool = False

    @property
    def sourcemap(self) -> Path:
        return self.output.with_name(self.output.name + '.map')


class AssetKind(Enum):
    SINGLE_FILE = 'file'
    DIRECTORY_TREE = 'tree'


@dataclass(frozen=True)
class AssetJob:
    """A non-code asset mirrored into the output tree."""

    source: Path
    destination_dir: Path
    kind: AssetKind = AssetKind.SINGLE_FILE

    @property
    def destination(self) -> Path:
        """Where the asset lands: the file itself for single files, the tree root otherwise."""
        if self.kind is AssetKind.SINGLE_FILE:
            return self.destination_dir / self.source.name
        return self.destination_dir
