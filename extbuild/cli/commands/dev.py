from colorama import Fore, Style

from ...config import DEV_COMMAND
from ...pipeline import ExtensionBuildPipeline
from ..common import _load_settings, root_option, verbose_option
from ..progress import ProgressDisplay

from ..app import cli


@cli.command()
@root_option
@verbose_option
def dev(root, verbose):
    """
    Build everything, then watch and rebuild / re-copy on change.

    NODE_ENV selects the build mode (default: development). Press Ctrl-C to stop.
    """
    settings = _load_settings(root, verbose)
    node_env = settings.mode_for(DEV_COMMAND)

    print(f"\n{Fore.CYAN}Watching extension sources ({node_env}); press Ctrl-C to stop{Style.RESET_ALL}\n")

    pipeline = ExtensionBuildPipeline(settings, progress_callback=ProgressDisplay.show)
    session = pipeline.develop(node_env)
    try:
        session.wait()
    except KeyboardInterrupt:
        print(f"\n{Fore.YELLOW}Stopping watchers...{Style.RESET_ALL}")
    finally:
        session.stop()
