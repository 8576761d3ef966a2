"""Per-target transform profiles.

A profile is either a ProductionProfile or a DevelopmentProfile. Both carry
whether the JSX transform applies and the literal substitutions applied before
the syntax transform; the development variant also enables the development
JSX runtime (extra component diagnostics).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Union

from .targets import BundleTarget

ENV_MARKER = 'process.env.NODE_ENV'


class BuildMode(str, Enum):
    PRODUCTION = 'production'
    DEVELOPMENT = 'development'


class TransformStep(str, Enum):
    RESOLVE = 'resolve'        # node-style module resolution
    INTEROP = 'interop'        # CommonJS -> ESM interop
    SUBSTITUTE = 'substitute'  # literal replacement of environment markers
    JSX = 'jsx'                # automatic-runtime JSX lowering


class _StepsMixin:
    jsx: bool

    @property
    def steps(self) -> List[TransformStep]:
        """Ordered transform steps; substitution always precedes the syntax transform."""
        steps = [TransformStep.RESOLVE, TransformStep.INTEROP, TransformStep.SUBSTITUTE]
        if self.jsx:
            steps.append(TransformStep.JSX)
        return steps


@dataclass(frozen=True)
class ProductionProfile(_StepsMixin):
    jsx: bool = False
    substitutions: Dict[str, str] = field(
        default_factory=lambda: {ENV_MARKER: BuildMode.PRODUCTION.value}
    )

    @property
    def mode(self) -> BuildMode:
        return BuildMode.PRODUCTION


@dataclass(frozen=True)
class DevelopmentProfile(_StepsMixin):
    jsx: bool = False
    substitutions: Dict[str, str] = field(
        default_factory=lambda: {ENV_MARKER: BuildMode.DEVELOPMENT.value}
    )
    jsx_dev: bool = True

    @property
    def mode(self) -> BuildMode:
        return BuildMode.DEVELOPMENT


TransformProfile = Union[ProductionProfile, DevelopmentProfile]


def resolve_profile(target: BundleTarget, node_env: str) -> TransformProfile:
    """
    Derive the transform profile for a target under the active build mode.

    Args:
        target: Target being built
        node_env: Active NODE_ENV value; anything but 'production' is a development build

    Returns:
        ProductionProfile or DevelopmentProfile
    """
    substitutions = {ENV_MARKER: node_env}
    if node_env == BuildMode.PRODUCTION.value:
        return ProductionProfile(jsx=target.uses_ui_transform, substitutions=substitutions)
    return DevelopmentProfile(jsx=target.uses_ui_transform, substitutions=substitutions)
