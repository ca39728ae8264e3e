"""Base definition of mod loaders, a loader overlays its libraries, arguments and main
class onto the vanilla version descriptor. The base class is the "no loader" variant
that returns the descriptor unchanged.
"""

from .meta import VersionDescriptor, Library, Artifact
from .error import ParseError

from typing import TYPE_CHECKING, Optional, Iterable, List, Set, Tuple, Any

if TYPE_CHECKING:
    from .standard import Config


__all__ = ["Loader", "library_identity", "remove_libraries", "profile_library", "extend_arguments"]


class Loader:
    """A mod loader, given by its name and version. Subclasses override `merge`.
    """

    name: Optional[str] = None

    def __init__(self, version: Optional[str] = None) -> None:
        self.version = version

    def merge(self, config: "Config", desc: VersionDescriptor, watcher: Any) -> VersionDescriptor:
        """Merge the loader's metadata into the given vanilla descriptor and return it,
        the descriptor may be modified in place. The only side effects allowed are the
        writes to the loader's own cache files.

        :raises InstallError: Any installer error when the loader can't be merged.
        :raises HttpError: If the loader's metadata can't be requested.
        """
        return desc

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name} {self.version}>"


def library_identity(lib: Library) -> Tuple[str, str]:
    """Return the identity of a library, ignoring its version.

    :raises ParseError: If the library name is not a valid coordinate.
    """
    return lib.spec.identity()


def remove_libraries(desc: VersionDescriptor, replacements: Iterable[Library]) -> int:
    """Remove from the descriptor every library that has the same identity as one of the
    replacement libraries.

    :return: The number of removed libraries.
    """

    identities: Set[Tuple[str, str]] = {library_identity(lib) for lib in replacements}
    kept = [lib for lib in desc.libraries if library_identity(lib) not in identities]
    removed = len(desc.libraries) - len(kept)
    desc.libraries = kept
    return removed


def profile_library(obj: Any, path: str, *, skip_args: bool = False) -> Library:
    """Parse a library from a loader profile. Such library is either given with a maven
    repository base URL, in which case the artifact path is derived from its name, or
    with an embedded `downloads/artifact` object.

    :raises ParseError: If the library is malformed or has no download information.
    """

    if not isinstance(obj, dict):
        raise ParseError(f"{path} must be an object")

    repo_url = obj.get("url")
    downloads = obj.get("downloads")

    if isinstance(downloads, dict) and downloads.get("artifact") is not None:
        lib = Library.from_json(obj, path)
        if lib.artifact is not None and lib.artifact.path is None:
            lib.artifact.path = lib.spec.file_path()
        lib.url = None
        lib.skip_args = skip_args
        return lib

    if not isinstance(repo_url, str):
        raise ParseError(f"{path} must have an url or a downloads/artifact object")

    name = obj.get("name")
    if not isinstance(name, str):
        raise ParseError(f"{path}/name must be a string")

    sha1 = obj.get("sha1")
    if sha1 is not None and not isinstance(sha1, str):
        raise ParseError(f"{path}/sha1 must be a string")

    size = obj.get("size")
    if size is not None and not isinstance(size, int):
        raise ParseError(f"{path}/size must be an integer")

    lib = Library(name, skip_args=skip_args)
    lib_path = lib.spec.file_path()

    # Let's be sure to have a '/' as last character.
    if not repo_url.endswith("/"):
        repo_url += "/"

    lib.artifact = Artifact(f"{repo_url}{lib_path}", path=lib_path, sha1=sha1 or "", size=size)
    return lib


def extend_arguments(desc: VersionDescriptor, arguments: Any, path: str) -> None:
    """Append the JVM and game arguments of a loader profile to the descriptor's ones.

    :raises ParseError: If the arguments are not lists.
    """

    if arguments is None:
        return
    if not isinstance(arguments, dict):
        raise ParseError(f"{path} must be an object")

    jvm_args: List[Any] = arguments.get("jvm", [])
    if not isinstance(jvm_args, list):
        raise ParseError(f"{path}/jvm must be a list")

    game_args: List[Any] = arguments.get("game", [])
    if not isinstance(game_args, list):
        raise ParseError(f"{path}/game must be a list")

    # Legacy versions only have the 'minecraftArguments' string, that is left untouched.
    if desc.legacy_args is not None and not len(desc.jvm_args) and not len(desc.game_args):
        return

    desc.jvm_args.extend(jvm_args)
    desc.game_args.extend(game_args)
