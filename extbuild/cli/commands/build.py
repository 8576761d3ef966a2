import sys

from colorama import Fore, Style

from ...config import BUILD_COMMAND
from ...pipeline import ExtensionBuildPipeline
from ..common import _load_settings, root_option, verbose_option
from ..progress import ProgressDisplay

from ..app import cli


@cli.command()
@root_option
@verbose_option
def build(root, verbose):
    """
    One-shot build of every bundle and asset into dist/.

    NODE_ENV selects the build mode (default: production).
    """
    settings = _load_settings(root, verbose)
    node_env = settings.mode_for(BUILD_COMMAND)

    print(f"\n{Fore.CYAN}Building extension ({node_env}) into {settings.dist_path}{Style.RESET_ALL}\n")

    pipeline = ExtensionBuildPipeline(settings, progress_callback=ProgressDisplay.show)
    summary = pipeline.build(node_env)

    built = sum(1 for r in summary.results if r.success)
    copied = sum(len(r.copied) for r in summary.reports)
    copy_failures = sum(len(r.failures) for r in summary.reports)

    print()
    if summary.ok:
        print(f"{Fore.GREEN}✓ Built {built}/{len(summary.results)} bundles, copied {copied} file(s){Style.RESET_ALL}\n")
        return

    print(f"{Fore.RED}✗ Built {built}/{len(summary.results)} bundles, "
          f"{copy_failures} copy failure(s){Style.RESET_ALL}")
    for result in summary.failed_targets:
        print(f"  {Fore.RED}{result.target.name}{Style.RESET_ALL}: {result.diagnostics[0] if result.diagnostics else 'failed'}")
    print()
    sys.exit(1)
