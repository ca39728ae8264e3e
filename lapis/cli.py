"""Small command line front-end, it provides an entry point to install a version with
an optional mod loader. The `__main__.py` wrapper can call the entry point from the
`python -m lapis` command.
"""

from argparse import ArgumentParser
from pathlib import Path
import logging
import sys

from .standard import Config, Context, SimpleWatcher, install, \
    VersionLoadingEvent, VersionFetchingEvent, VersionLoadedEvent, LoaderMergeEvent, \
    AssetsResolveEvent, JvmLoadedEvent, LibrariesResolvedEvent, NativesExtractedEvent, \
    DownloadStartEvent, DownloadProgressEvent, DownloadCompleteEvent, \
    ProcessorStartEvent, ProcessorDoneEvent
from .fabric import FabricLoader
from .forge import ForgeLoader, NeoForgeLoader
from .loader import Loader
from .error import InstallError
from .http import HttpError
from . import LAUNCHER_NAME, LAUNCHER_VERSION

from typing import Optional, List, cast


EXIT_OK = 0
EXIT_FAILURE = 1


# The following class is only used for type checking and represent a typed namespace
# as produced by the arguments registered to the argument parser.

class InstallNs:
    main_dir: Optional[Path]
    verbose: int
    version: str
    fabric: Optional[str]
    quilt: Optional[str]
    forge: Optional[str]
    neoforge: Optional[str]
    name: Optional[str]
    jvm: Optional[Path]


def main(args: Optional[List[str]] = None) -> None:
    """Main entry point of the CLI.
    """

    parser = register_arguments()
    ns = parser.parse_args(sys.argv[1:] if args is None else args)

    if ns.subcommand != "install":
        parser.print_help()
        sys.exit(EXIT_FAILURE)

    ns = cast(InstallNs, ns)
    logging.basicConfig(
        level=logging.DEBUG if ns.verbose >= 2 else logging.INFO if ns.verbose == 1 else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s")

    sys.exit(cmd_install(ns))


def register_arguments() -> ArgumentParser:
    parser = ArgumentParser(prog=LAUNCHER_NAME, description="Install Minecraft versions with an optional mod loader.")
    parser.add_argument("--version", action="version", version=f"{LAUNCHER_NAME} {LAUNCHER_VERSION}")
    subparsers = parser.add_subparsers(title="subcommands", dest="subcommand")

    install_parser = subparsers.add_parser("install", help="Install a version.")
    install_parser.add_argument("--main-dir", type=Path, help="Main directory of the game, defaults to the usual .minecraft.")
    install_parser.add_argument("--name", help="Name of the installed version.")
    install_parser.add_argument("--jvm", type=Path, help="Java executable to use instead of Mojang's runtime.")
    install_parser.add_argument("-v", "--verbose", action="count", default=0, help="Enable verbose logging, can be repeated.")

    loader_group = install_parser.add_mutually_exclusive_group()
    loader_group.add_argument("--fabric", metavar="LOADER_VERSION", help="Install with the given Fabric loader.")
    loader_group.add_argument("--quilt", metavar="LOADER_VERSION", help="Install with the given Quilt loader.")
    loader_group.add_argument("--forge", metavar="LOADER_VERSION", help="Install with the given Forge loader.")
    loader_group.add_argument("--neoforge", metavar="LOADER_VERSION", help="Install with the given NeoForge loader.")

    install_parser.add_argument("version", help="The game version, like 1.21.4.")
    return parser


def new_loader(ns: InstallNs) -> Loader:
    """Return the loader selected by the arguments.
    """
    if ns.fabric is not None:
        return FabricLoader.fabric(ns.fabric)
    elif ns.quilt is not None:
        return FabricLoader.quilt(ns.quilt)
    elif ns.forge is not None:
        return ForgeLoader(ns.forge)
    elif ns.neoforge is not None:
        return NeoForgeLoader(ns.neoforge)
    return Loader()


def cmd_install(ns: InstallNs) -> int:

    config = Config(ns.version,
        context=Context(ns.main_dir),
        loader=new_loader(ns),
        version_name=ns.name,
        jvm_path=ns.jvm)

    try:
        desc = install(config, watcher=InstallWatcher())
    except (InstallError, HttpError) as error:
        print(f"[FAILED] {error}", file=sys.stderr)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print("[HALT] keyboard interrupt", file=sys.stderr)
        return EXIT_FAILURE

    print(f"[  OK  ] Installed {config.version_name}, main class {desc.main_class}")
    return EXIT_OK


class InstallWatcher(SimpleWatcher):

    def __init__(self) -> None:

        def assets_resolve(e: AssetsResolveEvent) -> None:
            if e.count is not None:
                task("OK", f"Resolved {e.count} assets of index {e.index_version}")

        super().__init__({
            VersionLoadingEvent: lambda e: task("..", f"Loading version {e.version}"),
            VersionFetchingEvent: lambda e: task("..", f"Fetching version {e.version}"),
            VersionLoadedEvent: lambda e: task("OK", f"Loaded version {e.version}"),
            LoaderMergeEvent: lambda e: task("..", f"Merging {e.loader} {e.loader_version}"),
            AssetsResolveEvent: assets_resolve,
            JvmLoadedEvent: lambda e: task("OK", f"Loaded {e.kind} Java {e.version or ''}".rstrip()),
            LibrariesResolvedEvent: lambda e: task("OK", f"Resolved {e.class_libs_count} libraries and {e.native_libs_count} natives"),
            NativesExtractedEvent: lambda e: task("OK", f"Extracted {e.count} native files"),
            DownloadStartEvent: self.download_start,
            DownloadProgressEvent: self.download_progress,
            DownloadCompleteEvent: lambda e: task("OK", "Download complete"),
            ProcessorStartEvent: lambda e: task("..", f"Running processor {e.task}"),
            ProcessorDoneEvent: lambda e: task("OK", f"Processor {e.task} done"),
        })

        self.entries_count = 0

    def download_start(self, e: DownloadStartEvent) -> None:
        self.entries_count = e.entries_count
        task("..", f"Downloading {e.entries_count} files with {e.threads_count} threads")

    def download_progress(self, e: DownloadProgressEvent) -> None:
        total_count = str(e.total)
        print(f"\r[  ..  ] Downloaded {e.count:{len(total_count)}}/{total_count} ({e.category})", end="", flush=True)
        if e.count == e.total:
            print()


def task(state: str, text: str) -> None:
    print(f"[{state:^6}] {text}")
