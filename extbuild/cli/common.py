import sys
from pathlib import Path
from typing import Optional

import click
from colorama import Fore, Style
from pydantic import ValidationError

from ..config import Settings, get_settings
from .logging import configure_logging


root_option = click.option(
    '--root',
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help='Project root containing src/ and public/ (default: current directory)'
)

verbose_option = click.option(
    '--verbose', '-v',
    is_flag=True,
    default=False,
    help='Show debug output'
)


def _load_settings(root: Optional[Path], verbose: bool) -> Settings:
    """Load settings for a command and set up logging; exits on invalid configuration."""
    overrides = {}
    if root is not None:
        root = root.resolve()
        overrides['project_root'] = root
        overrides['_env_file'] = root / '.env'

    try:
        settings = get_settings(**overrides)
    except ValidationError as e:
        print(f"{Fore.RED}Invalid configuration:{Style.RESET_ALL}\n{e}")
        sys.exit(2)

    configure_logging(settings.log_path, verbose=verbose)
    return settings
