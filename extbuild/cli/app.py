import click
from colorama import init as colorama_init

from .. import __version__

# Initialize colorama for cross-platform colored output
colorama_init()


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    extbuild - build orchestrator for multi-entry browser extensions

    Bundles the background worker, content script and UI pages, and mirrors
    the manifest, HTML shells and public/ assets into dist/.
    """
    pass


from .commands import build as _build  # noqa: E402,F401
from .commands import dev as _dev  # noqa: E402,F401
