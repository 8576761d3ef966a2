"""Configuration management for extbuild."""

import shlex
from pathlib import Path
from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BUILD_COMMAND = 'build'
DEV_COMMAND = 'dev'


class Settings(BaseSettings):
    """Build settings loaded from environment variables and an optional .env file."""

    model_config = SettingsConfigDict(
        env_prefix='EXTBUILD_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        populate_by_name=True,
        extra='ignore'
    )

    # Build mode signal, substituted for process.env.NODE_ENV in every bundle
    node_env: Optional[str] = Field(
        default=None,
        validation_alias='NODE_ENV',
        description="production or development; defaults depend on the command"
    )

    # Layout; relative paths are anchored to project_root (not to cwd)
    project_root: Path = Field(default_factory=Path.cwd)
    src_dir: Path = Field(default=Path("src"))
    public_dir: Path = Field(default=Path("public"))
    dist_dir: Path = Field(default=Path("dist"))
    log_file: Path = Field(default=Path("extbuild.log"))

    # Compiler
    esbuild_command: str = Field(default="esbuild", description="esbuild executable, e.g. 'npx esbuild'")
    esbuild_target: str = Field(default="es2020")

    # Processing options
    debounce_seconds: float = Field(default=0.1, ge=0, description="Quiet window used to batch filesystem events")
    max_workers: int = Field(default=8, ge=1, description="Max concurrent build and copy passes")

    def _resolve(self, path: Path) -> Path:
        return path if path.is_absolute() else self.project_root / path

    @property
    def src_path(self) -> Path:
        return self._resolve(self.src_dir)

    @property
    def public_path(self) -> Path:
        return self._resolve(self.public_dir)

    @property
    def dist_path(self) -> Path:
        return self._resolve(self.dist_dir)

    @property
    def log_path(self) -> Path:
        return self._resolve(self.log_file)

    @property
    def esbuild_argv(self) -> List[str]:
        return shlex.split(self.esbuild_command)

    def mode_for(self, command: str) -> str:
        """
        Effective NODE_ENV value for a command.

        Args:
            command: 'build' or 'dev'

        Returns:
            NODE_ENV if set, otherwise 'production' for build and 'development' for dev
        """
        if self.node_env:
            return self.node_env
        return 'development' if command == DEV_COMMAND else 'production'


def get_settings(**overrides) -> Settings:
    """Get build settings, with optional explicit overrides."""
    return Settings(**overrides)
