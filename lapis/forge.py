"""Definition of the Forge family of mod loaders, installed from the installer JAR
distributed on their maven repository. The installer contains an install profile
describing data variables, processors and install-time libraries, and the version
metadata of the loader.

NeoForge uses the same installer protocol, only the repository and artifact differ.
"""

from zipfile import BadZipFile
from json import JSONDecodeError
from pathlib import Path
import logging
import json

from .loader import Loader, remove_libraries, profile_library, extend_arguments
from .meta import VersionDescriptor, DataVariable, ProcessorStep, Library
from .extract import extract_file, extract_dir
from .download import download
from .error import NotFoundError, ParseError
from .util import LibrarySpecifier

from typing import TYPE_CHECKING, Dict, List, Set, Any

if TYPE_CHECKING:
    from .standard import Config


__all__ = ["ForgeLoader", "NeoForgeLoader"]

logger = logging.getLogger(__name__)

# Group of the synthetic coordinates of files extracted from installers.
INSTALLER_EXTRACTS_GROUP = "lapis.installer"
# Repository used by legacy installers' libraries that don't give any.
LIBRARIES_URL = "https://libraries.minecraft.net/"


class ForgeLoader(Loader):
    """The Forge mod loader, the version is the loader version without the game version
    prefix, like `47.3.0` for game version `1.20.1`.
    """

    name = "forge"
    repo_url = "https://maven.minecraftforge.net/"

    def installer_spec(self, game_version: str) -> LibrarySpecifier:
        """Return the specifier of the installer JAR for the given game version.
        """
        loader_version = str(self.version)
        if not loader_version.startswith(f"{game_version}-"):
            loader_version = f"{game_version}-{loader_version}"
        return LibrarySpecifier("net.minecraftforge", "forge", loader_version, "installer")

    def installer_url(self, game_version: str) -> str:
        return f"{self.repo_url}{self.installer_spec(game_version).file_path()}"

    def merge(self, config: "Config", desc: VersionDescriptor, watcher: Any) -> VersionDescriptor:

        name = config.version_name
        game_version = desc.id

        profile_dir = config.context.loader_profile_dir(self.name, name)
        installer_file = profile_dir / f"installer-{name}.jar"
        installer_json_file = profile_dir / f"installer-{name}.json"
        version_json_file = profile_dir / f"version-{name}.json"

        if not installer_json_file.is_file():
            self._ensure_installer(game_version, installer_file, watcher)
            extract_file(installer_file, "install_profile.json", installer_json_file)

        install_profile = _read_json(installer_json_file, f"{self.name} installer")
        if not isinstance(install_profile, dict):
            raise ParseError(f"{self.name} installer: / must be an object")

        if "json" not in install_profile and "versionInfo" in install_profile:
            self._ensure_installer(game_version, installer_file, watcher)
            return self._merge_legacy(config, desc, install_profile, installer_file)

        if not version_json_file.is_file():
            self._ensure_installer(game_version, installer_file, watcher)
            version_entry = install_profile.get("json", "/version.json")
            if not isinstance(version_entry, str):
                raise ParseError(f"{self.name} installer: /json must be a string")
            extract_file(installer_file, version_entry.lstrip("/"), version_json_file)

        version_meta = _read_json(version_json_file, f"{self.name} version")
        if not isinstance(version_meta, dict):
            raise ParseError(f"{self.name} version: / must be an object")

        # The installer is needed from here to extract the data files and libraries,
        # merging happens only when the resolved descriptor is not yet cached.
        self._ensure_installer(game_version, installer_file, watcher)

        raw_data = install_profile.get("data", {})
        if not isinstance(raw_data, dict):
            raise ParseError(f"{self.name} installer: /data must be an object")

        installer_data = self._extract_data(config, game_version, installer_file, raw_data)

        # Installer data may override the builtin variables.
        libraries_dir = config.context.libraries_dir
        data = {
            "SIDE": DataVariable("client", "server"),
            "MINECRAFT_VERSION": DataVariable(game_version, game_version),
            "ROOT": DataVariable(str(config.context.main_dir.absolute())),
            "LIBRARY_DIR": DataVariable(str(libraries_dir.absolute())),
            "MINECRAFT_JAR": DataVariable(str(config.version_jar_file.absolute())),
        }
        data.update(installer_data)

        raw_processors = install_profile.get("processors", [])
        if not isinstance(raw_processors, list):
            raise ParseError(f"{self.name} installer: /processors must be a list")

        processors = [ProcessorStep.from_json(raw, f"{self.name} installer: /processors/{i}")
            for i, raw in enumerate(raw_processors)]

        # Some libraries are only bundled in the installer.
        try:
            count = extract_dir(installer_file, "maven/", libraries_dir)
            logger.debug("Extracted %d bundled libraries from %s", count, installer_file)
        except (NotFoundError, BadZipFile, OSError) as error:
            logger.warning("Failed to extract bundled libraries of %s: %s", installer_file, error)

        version_libs = self._parse_libraries(version_meta, f"{self.name} version", skip_args=False)
        installer_libs = self._parse_libraries(install_profile, f"{self.name} installer", skip_args=True)

        remove_libraries(desc, version_libs)

        seen: Set[str] = set()
        for lib in (*version_libs, *installer_libs):
            if lib.name not in seen:
                seen.add(lib.name)
                desc.libraries.append(lib)

        extend_arguments(desc, version_meta.get("arguments"), f"{self.name} version: /arguments")

        main_class = version_meta.get("mainClass")
        if not isinstance(main_class, str):
            raise ParseError(f"{self.name} version: /mainClass must be a string")

        desc.main_class = main_class
        desc.data = data
        desc.processors = processors

        return desc

    def _ensure_installer(self, game_version: str, installer_file: Path, watcher: Any) -> None:
        """Download the installer JAR if not already cached.
        """
        if installer_file.is_file():
            logger.debug("Using cached installer %s", installer_file)
            return
        download(self.installer_url(game_version), installer_file, watcher=watcher)

    def _extract_data(self, config: "Config", game_version: str, installer_file: Path, raw_data: dict) -> Dict[str, DataVariable]:
        """Parse installer data variables, values referring to a file in the installer
        are extracted to the libraries directory and replaced by their coordinate.
        """

        data = {}
        for key, raw_var in raw_data.items():

            var = DataVariable.from_json(raw_var, f"{self.name} installer: /data/{key}")

            if var.client.startswith("/"):

                entry_name = var.client[1:]
                file_name = entry_name.rsplit("/", 1)[-1]
                if not len(file_name):
                    raise NotFoundError(f"file name of installer data {key}")

                stem = file_name.split(".", 1)[0]
                spec = LibrarySpecifier(INSTALLER_EXTRACTS_GROUP, f"{self.name}-installer-extracts", game_version, stem)
                if "." in file_name:
                    spec.extension = file_name.rsplit(".", 1)[1]

                extract_file(installer_file, entry_name, config.context.libraries_dir / spec.file_path())
                var.client = f"[{spec}]"

            data[key] = var

        return data

    def _parse_libraries(self, meta: dict, what: str, *, skip_args: bool) -> List[Library]:
        raw_libraries = meta.get("libraries", [])
        if not isinstance(raw_libraries, list):
            raise ParseError(f"{what}: /libraries must be a list")
        return [profile_library(raw, f"{what}: /libraries/{i}", skip_args=skip_args)
            for i, raw in enumerate(raw_libraries)]

    def _merge_legacy(self, config: "Config", desc: VersionDescriptor, install_profile: dict, installer_file: Path) -> VersionDescriptor:
        """Merge installers older than 1.12.2-14.23.5.2847, these have no processors and
        embed the version metadata in the install profile.
        """

        version_meta = install_profile["versionInfo"]
        if not isinstance(version_meta, dict):
            raise ParseError(f"{self.name} installer: /versionInfo must be an object")

        install = install_profile.get("install")
        if not isinstance(install, dict):
            raise ParseError(f"{self.name} installer: /install must be an object")

        jar_entry = install.get("filePath")
        jar_name = install.get("path")
        if not isinstance(jar_entry, str) or not isinstance(jar_name, str):
            raise ParseError(f"{self.name} installer: /install/filePath and /install/path must be strings")

        # The loader JAR itself is only available in the installer.
        jar_spec = LibrarySpecifier.from_str(jar_name)
        extract_file(installer_file, jar_entry, config.context.libraries_dir / jar_spec.file_path())

        raw_libraries = version_meta.get("libraries", [])
        if not isinstance(raw_libraries, list):
            raise ParseError(f"{self.name} installer: /versionInfo/libraries must be a list")

        libraries = []
        for i, raw_lib in enumerate(raw_libraries):
            if not isinstance(raw_lib, dict):
                raise ParseError(f"{self.name} installer: /versionInfo/libraries/{i} must be an object")
            # Older installers require libraries that are no longer given by vanilla,
            # default to Mojang's repository for these.
            raw_lib = {key: value for key, value in raw_lib.items() if key not in ("serverreq", "clientreq", "checksums")}
            if not raw_lib.get("url"):
                raw_lib["url"] = LIBRARIES_URL
            libraries.append(profile_library(raw_lib, f"{self.name} installer: /versionInfo/libraries/{i}"))

        remove_libraries(desc, libraries)
        desc.libraries.extend(libraries)

        main_class = version_meta.get("mainClass")
        if not isinstance(main_class, str):
            raise ParseError(f"{self.name} installer: /versionInfo/mainClass must be a string")
        desc.main_class = main_class

        legacy_args = version_meta.get("minecraftArguments")
        if isinstance(legacy_args, str):
            desc.legacy_args = legacy_args

        return desc


class NeoForgeLoader(ForgeLoader):
    """The NeoForge mod loader, the version is the full loader version like `21.4.75`.
    """

    name = "neoforge"
    repo_url = "https://maven.neoforged.net/releases/"

    def installer_spec(self, game_version: str) -> LibrarySpecifier:
        loader_version = str(self.version)
        # This is using the legacy forge artifact for 1.20.1 only.
        if game_version == "1.20.1":
            if not loader_version.startswith("1.20.1-"):
                loader_version = f"1.20.1-{loader_version}"
            return LibrarySpecifier("net.neoforged", "forge", loader_version, "installer")
        return LibrarySpecifier("net.neoforged", "neoforge", loader_version, "installer")


def _read_json(path: Path, what: str) -> Any:
    try:
        with path.open("rb") as fp:
            return json.load(fp)
    except JSONDecodeError as error:
        raise ParseError(f"{what}: invalid json: {error}") from error
