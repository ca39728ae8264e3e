"""Definition of the standard installation of a version using the metadata format used
by Mojang. This module also provide Mojang's version manifest which is used to resolve
vanilla versions, the optional mod loader is merged on top of the vanilla metadata.
"""

from json import JSONDecodeError
from pathlib import Path
import platform
import logging
import shutil
import json
import re

from .download import DownloadList, DownloadEntry, reconcile, \
    DownloadStartEvent, DownloadFileProgressEvent, DownloadProgressEvent, DownloadCompleteEvent
from .util import jvm_bin_filename, minecraft_os, minecraft_arch, minecraft_arch_bits, calc_file_sha1
from .meta import VersionDescriptor, JavaVersion, Library, Rule
from .processor import ProcessorRunner, ProcessorStartEvent, ProcessorDoneEvent
from .error import NotFoundError, VersionNotFoundError, UnsupportedArchitectureError, ParseError
from .extract import extract_all
from .loader import Loader
from .http import http_request, http_json, HttpError

from typing import Optional, Dict, List, Callable, Any


__all__ = ["Context", "Config", "Watcher", "SimpleWatcher", "Installer", "install", "VersionManifest",
    "interpret_rule", "interpret_rule_os", "jvm_platform", "get_minecraft_dir",
    "VersionLoadingEvent", "VersionFetchingEvent", "VersionLoadedEvent", "LoaderMergeEvent",
    "AssetsResolveEvent", "JvmLoadedEvent", "LibrariesResolvedEvent", "NativesExtractedEvent",
    "DownloadStartEvent", "DownloadFileProgressEvent", "DownloadProgressEvent",
    "DownloadCompleteEvent", "ProcessorStartEvent", "ProcessorDoneEvent"]

logger = logging.getLogger(__name__)

RESOURCES_URL = "https://resources.download.minecraft.net/"
JVM_META_URL = "https://piston-meta.mojang.com/v1/products/java-runtime/2ec0cc96c44e5a76b9c8b7c39df7210883d12871/all.json"
VERSION_MANIFEST_URL = "https://piston-meta.mojang.com/mc/game/version_manifest_v2.json"


class Context:
    """Context of the game's installation. This defines various directories where
    versions, assets, libraries, natives and JVM are stored.
    """

    def __init__(self,
        main_dir: Optional[Path] = None, *,
        runtime_dir: Optional[Path] = None
    ) -> None:
        """Construct a Minecraft installation context.

        Note that these paths can perfectly be relative paths, they are computed to
        absolute paths when needed, so you don't have to care. By default they will be
        resolved relatively to the current working directory (of the executing Python
        program).

        :param main_dir: The main directory where versions, assets, libraries and
        optionally JVM are installed. If not specified this path will be set the usual
        `.minecraft` (see https://minecraft.fandom.com/fr/wiki/.minecraft).
        :param runtime_dir: The directory where Mojang's Java runtimes are installed,
        this defaults to the `runtimes` directory of `main_dir`.
        """

        main_dir = get_minecraft_dir() if main_dir is None else main_dir
        self.main_dir = main_dir
        self.versions_dir = main_dir / "versions"
        self.assets_dir = main_dir / "assets"
        self.libraries_dir = main_dir / "libraries"
        self.natives_dir = main_dir / "natives"
        self.resources_dir = main_dir / "resources"
        self.runtime_dir = main_dir / "runtimes" if runtime_dir is None else runtime_dir

    def loader_profile_dir(self, loader_name: str, version_name: str) -> Path:
        """Return the directory where a loader caches its files for the given version.
        """
        return self.main_dir.joinpath(f".{loader_name}", "profiles", version_name)

    def __repr__(self) -> str:
        return f"<Context {self.main_dir}>"


class Config:
    """Configuration of a single install: the game version, the optional mod loader and
    the name of the installed version.
    """

    def __init__(self, version: str, *,
        context: Optional[Context] = None,
        loader: Optional[Loader] = None,
        version_name: Optional[str] = None,
        jvm_path: Optional[Path] = None
    ) -> None:
        """
        :param version: The vanilla game version, like `1.21.4`.
        :param loader: The mod loader to merge, no loader if not specified.
        :param version_name: Name of the installed version, defaults to the version and
        the loader version joined with a dash, or just the version without loader.
        :param jvm_path: A Java executable to use instead of Mojang's runtime.
        """
        self.version = version
        self.context = Context() if context is None else context
        self.loader = Loader() if loader is None else loader
        self.jvm_path = jvm_path
        self._version_name = version_name

    @property
    def version_name(self) -> str:
        if self._version_name is not None:
            return self._version_name
        elif self.loader.version is not None:
            return f"{self.version}-{self.loader.version}"
        else:
            return self.version

    @property
    def version_dir(self) -> Path:
        return self.context.versions_dir / self.version_name

    @property
    def version_json_file(self) -> Path:
        return self.version_dir / f"{self.version_name}.json"

    @property
    def version_jar_file(self) -> Path:
        return self.version_dir / f"{self.version_name}.jar"

    @property
    def natives_dir(self) -> Path:
        return self.context.natives_dir / self.version

    def __repr__(self) -> str:
        return f"<Config {self.version_name}>"


class Watcher:
    """Base class for a watcher of the install process.
    """

    def handle(self, event: Any) -> None:
        """Called when the watcher can handle the given event. Default implementation
        does nothing.
        """


class SimpleWatcher(Watcher):
    """A watcher dispatching each event to the handler registered for its type.
    """

    def __init__(self, handlers: Dict[type, Callable[[Any], None]]) -> None:
        self.handlers = handlers

    def handle(self, event: Any) -> None:
        handler = self.handlers.get(type(event))
        if handler is not None:
            handler(event)


class Installer:
    """The install orchestrator, each call to `install` ensures that the configured
    version is properly installed and can be called again to resume a failed install.
    """

    def __init__(self, config: Config) -> None:

        self.config = config
        self.manifest = VersionManifest(config.context.versions_dir / "version_manifest_v2.json")

        # Internal resolved states.
        self._desc: Optional[VersionDescriptor] = None
        self._entries: List[DownloadEntry] = []
        self._assets: Dict[str, Path] = {}
        self._assets_virtual_dir: Optional[Path] = None
        self._assets_resources_dir: Optional[Path] = None
        self._jvm_path: Optional[Path] = None
        self._natives: List[Path] = []

    def install(self, *, watcher: Optional[Watcher] = None) -> VersionDescriptor:
        """This function ensures that the configured version is properly installed. It
        can be called multiple time and will not recompute what have already been done,
        if errors happen, the install can be resumed and the failed steps will be retried.

        :return: The resolved version descriptor.
        :raises InstallError: Any fatal installer error.
        :raises HttpError: If some metadata can't be requested.
        """

        watcher = watcher or Watcher()

        self._entries.clear()
        self._assets.clear()
        self._natives.clear()

        self._resolve_descriptor(watcher)
        self._resolve_assets(watcher)
        self._resolve_jvm(watcher)
        self._resolve_jar(watcher)
        self._resolve_libraries(watcher)
        self._download(watcher)
        self._finalize_assets(watcher)
        self._extract_natives(watcher)
        self._run_processors(watcher)

        assert self._desc is not None
        return self._desc

    def _resolve_descriptor(self, watcher: Watcher) -> None:
        """This step loads the cached resolved descriptor if present, or fetch the
        vanilla metadata, merge the loader and save the result.
        """

        config = self.config
        version_name = config.version_name
        json_file = config.version_json_file

        watcher.handle(VersionLoadingEvent(version_name))

        try:
            with json_file.open("rb") as json_fp:
                self._desc = VersionDescriptor.from_json(json.load(json_fp))
            logger.debug("Loaded cached descriptor %s", json_file)
            watcher.handle(VersionLoadedEvent(version_name, False))
            return
        except (OSError, JSONDecodeError):
            pass

        watcher.handle(VersionFetchingEvent(version_name))

        version_super_meta = self.manifest.get_version(config.version)
        if version_super_meta is None:
            raise VersionNotFoundError(config.version)

        version_url = version_super_meta.get("url")
        if not isinstance(version_url, str):
            raise ParseError(f"version manifest: /versions/{config.version}/url must be a string")

        desc = VersionDescriptor.from_json(http_json(version_url))

        loader = config.loader
        if loader.name is not None:
            watcher.handle(LoaderMergeEvent(loader.name, loader.version))
            desc = loader.merge(config, desc, watcher)

        self._desc = desc
        self._save(desc)

        watcher.handle(VersionLoadedEvent(version_name, True))

    def _save(self, desc: VersionDescriptor) -> None:
        """Write the descriptor to the version's metadata file.
        """
        json_file = self.config.version_json_file
        json_file.parent.mkdir(parents=True, exist_ok=True)
        with json_file.open("wt") as json_fp:
            json.dump(desc.to_json(), json_fp, indent=2)

    def _resolve_assets(self, watcher: Watcher) -> None:
        """This step resolve assets from the asset index and add their entries.
        """

        assert self._desc is not None
        context = self.config.context

        index_info = self._desc.asset_index
        if index_info is None:
            # Asset info may not be present, it's not required because some custom
            # versions may want to use there own internal assets.
            return

        index_version = index_info.id
        watcher.handle(AssetsResolveEvent(index_version, None))

        index_file = context.assets_dir.joinpath("indexes", f"{index_version}.json")

        try:
            with index_file.open("rb") as index_fp:
                assets_index = json.load(index_fp)
        except (OSError, JSONDecodeError):
            # If for some reason we can't read an assets index, try downloading it.
            assets_index = http_json(index_info.url)
            index_file.parent.mkdir(parents=True, exist_ok=True)
            with index_file.open("wt") as index_fp:
                json.dump(assets_index, index_fp)

        if not isinstance(assets_index, dict):
            raise ParseError("assets index: / must be an object")

        assets_resources = assets_index.get("map_to_resources", False)  # For version <= 13w23b
        assets_virtual = assets_index.get("virtual", False)  # For 13w23b < version <= 13w48b (1.7.2)

        if not isinstance(assets_resources, bool):
            raise ParseError("assets index: /map_to_resources must be a boolean")
        if not isinstance(assets_virtual, bool):
            raise ParseError("assets index: /virtual must be a boolean")

        assets_objects = assets_index.get("objects")
        if not isinstance(assets_objects, dict):
            raise ParseError("assets index: /objects must be an object")

        objects_dir = context.assets_dir / "objects"

        for asset_id, asset_obj in assets_objects.items():

            if not isinstance(asset_obj, dict):
                raise ParseError(f"assets index: /objects/{asset_id} must be an object")

            asset_hash = asset_obj.get("hash")
            if not isinstance(asset_hash, str) or len(asset_hash) < 2:
                raise ParseError(f"assets index: /objects/{asset_id}/hash must be a string")

            asset_size = asset_obj.get("size")
            if asset_size is not None and not isinstance(asset_size, int):
                raise ParseError(f"assets index: /objects/{asset_id}/size must be an integer")

            asset_hash_prefix = asset_hash[:2]
            asset_file = objects_dir.joinpath(asset_hash_prefix, asset_hash)
            asset_url = f"{RESOURCES_URL}{asset_hash_prefix}/{asset_hash}"

            self._assets[asset_id] = asset_file
            self._entries.append(DownloadEntry(asset_url, asset_file,
                size=asset_size, sha1=asset_hash, name=asset_id, category=DownloadEntry.ASSET))

        self._assets_virtual_dir = context.assets_dir.joinpath("virtual", "legacy") if assets_virtual else None
        self._assets_resources_dir = context.resources_dir if assets_resources else None

        watcher.handle(AssetsResolveEvent(index_version, len(self._assets)))

    def _resolve_jvm(self, watcher: Watcher) -> None:
        """Step resolving a JVM suitable for running the game and the processors.
        """

        assert self._desc is not None

        # Don't do anything if JVM is already provided.
        if self.config.jvm_path is not None:
            self._jvm_path = self.config.jvm_path
            watcher.handle(JvmLoadedEvent(None, JvmLoadedEvent.CUSTOM))
            return

        java_version = self._desc.java_version or JavaVersion()
        component = java_version.component

        runtime_dir = self.config.context.runtime_dir
        jvm_dir = runtime_dir / component
        jvm_manifest_file = runtime_dir / f"{component}.json"

        try:
            with jvm_manifest_file.open("rb") as jvm_manifest_fp:
                jvm_manifest = json.load(jvm_manifest_fp)
        except (OSError, JSONDecodeError):

            jvm_os = jvm_platform(java_version.major_version)

            all_jvm_meta = http_json(JVM_META_URL)
            if not isinstance(all_jvm_meta, dict):
                raise ParseError("jvm metadata: / must be an object")

            jvm_arch_meta = all_jvm_meta.get(jvm_os)
            if not isinstance(jvm_arch_meta, dict):
                raise UnsupportedArchitectureError(platform.system(), platform.machine())

            jvm_meta = jvm_arch_meta.get(component)
            if not isinstance(jvm_meta, list) or not len(jvm_meta):
                raise VersionNotFoundError(f"java runtime {component}")

            if not isinstance(jvm_meta[0], dict):
                raise ParseError(f"jvm metadata: /{jvm_os}/{component}/0 must be an object")

            jvm_meta_manifest = jvm_meta[0].get("manifest")
            if not isinstance(jvm_meta_manifest, dict):
                raise ParseError(f"jvm metadata: /{jvm_os}/{component}/0/manifest must be an object")

            jvm_meta_manifest_url = jvm_meta_manifest.get("url")
            if not isinstance(jvm_meta_manifest_url, str):
                raise ParseError(f"jvm metadata: /{jvm_os}/{component}/0/manifest/url must be a string")

            jvm_manifest = http_json(jvm_meta_manifest_url)
            if not isinstance(jvm_manifest, dict):
                raise ParseError("jvm manifest: / must be an object")

            jvm_meta_version = jvm_meta[0].get("version", {})
            if not isinstance(jvm_meta_version, dict):
                raise ParseError(f"jvm metadata: /{jvm_os}/{component}/0/version must be an object")

            jvm_manifest["version"] = jvm_meta_version.get("name")

            jvm_manifest_file.parent.mkdir(parents=True, exist_ok=True)
            with jvm_manifest_file.open("wt") as jvm_manifest_fp:
                json.dump(jvm_manifest, jvm_manifest_fp)

        # Special case for macOS because of weird directory structure.
        if minecraft_os == "osx":
            self._jvm_path = jvm_dir.joinpath("jre.bundle/Contents/Home/bin/java")
        else:
            self._jvm_path = jvm_dir.joinpath("bin", jvm_bin_filename)

        jvm_files = jvm_manifest.get("files")
        if not isinstance(jvm_files, dict):
            raise ParseError("jvm manifest: /files must be an object")

        for jvm_file_path_prefix, jvm_file in jvm_files.items():
            if not isinstance(jvm_file, dict):
                raise ParseError(f"jvm manifest: /files/{jvm_file_path_prefix} must be an object")
            if jvm_file.get("type") != "file":
                continue

            path = f"jvm manifest: /files/{jvm_file_path_prefix}/downloads/raw"
            jvm_downloads = jvm_file.get("downloads", {})
            if not isinstance(jvm_downloads, dict):
                raise ParseError(f"jvm manifest: /files/{jvm_file_path_prefix}/downloads must be an object")

            jvm_download_raw = jvm_downloads.get("raw")
            if not isinstance(jvm_download_raw, dict) or not isinstance(jvm_download_raw.get("url"), str):
                raise ParseError(f"{path}/url must be a string")

            self._entries.append(DownloadEntry(jvm_download_raw["url"], jvm_dir / jvm_file_path_prefix,
                size=jvm_download_raw.get("size"),
                sha1=jvm_download_raw.get("sha1"),
                name=jvm_file_path_prefix,
                category=DownloadEntry.JVM,
                executable=bool(jvm_file.get("executable", False))))

        # This key is custom and set just above in code.
        watcher.handle(JvmLoadedEvent(jvm_manifest.get("version"), JvmLoadedEvent.MOJANG))

    def _resolve_jar(self, watcher: Watcher) -> None:
        """This step resolves the client JAR file of the version.
        """

        assert self._desc is not None
        jar_file = self.config.version_jar_file

        client = self._desc.client
        if client is not None:
            self._entries.append(DownloadEntry(client.url, jar_file,
                size=client.size, sha1=client.sha1, name=jar_file.name, category=DownloadEntry.CUSTOM))
        elif not jar_file.is_file():
            raise NotFoundError(f"client jar {jar_file}")

    def _resolve_libraries(self, watcher: Watcher) -> None:
        """Step resolving libraries from the descriptor, with both regular artifacts
        and native classifiers, libraries are filtered by their rules.
        """

        assert self._desc is not None

        libraries_dir = self.config.context.libraries_dir
        natives_dir = self.config.natives_dir
        extract_natives = not natives_dir.is_dir() or not any(natives_dir.iterdir())

        # Libraries without URL may be produced by the processors still to run.
        processors_pending = any(step.is_client() and not step.success for step in self._desc.processors or ())

        class_libs_count = 0
        native_libs_count = 0

        for lib in self._desc.libraries:

            if lib.rules is not None and not interpret_rule(lib.rules):
                continue

            spec = lib.spec

            # Regular artifact of the library.
            if lib.artifact is not None or lib.url is not None or (lib.natives is None and not len(lib.classifiers)):

                if lib.artifact is not None:
                    lib_file = libraries_dir / (lib.artifact.path or spec.file_path())
                    url, size, sha1 = lib.artifact.url, lib.artifact.size, lib.artifact.sha1
                elif lib.url is not None:
                    lib_file = libraries_dir / spec.file_path()
                    repo_url = lib.url if lib.url.endswith("/") else f"{lib.url}/"
                    url, size, sha1 = f"{repo_url}{spec.file_path()}", None, None
                else:
                    lib_file = libraries_dir / spec.file_path()
                    url, size, sha1 = "", None, None

                # If no URL is given, no download method is available, so the file
                # must be already installed.
                if not len(url) and not lib_file.is_file():
                    if not processors_pending:
                        raise NotFoundError(f"library {lib.name}")
                    logger.debug("Library %s is expected from the processors", lib.name)

                self._entries.append(DownloadEntry(url, lib_file,
                    size=size, sha1=sha1, name=lib.name, category=DownloadEntry.LIBRARY))

                if not lib.skip_args:
                    class_libs_count += 1

            # Native classifier of the library for the host.
            classifier = _native_classifier(lib)
            if classifier is not None:

                artifact = lib.classifiers.get(classifier)
                if artifact is None:
                    logger.debug("No native classifier %s for library %s", classifier, lib.name)
                    continue

                spec.classifier = classifier
                native_file = libraries_dir / (artifact.path or spec.file_path())
                self._entries.append(DownloadEntry(artifact.url, native_file,
                    size=artifact.size, sha1=artifact.sha1, name=str(spec), category=DownloadEntry.LIBRARY))

                native_libs_count += 1
                if extract_natives:
                    self._natives.append(native_file)

        watcher.handle(LibrariesResolvedEvent(class_libs_count, native_libs_count))

    def _download(self, watcher: Watcher) -> None:
        """Reconcile all resolved entries with the disk and download the broken ones.
        """

        broken = reconcile(self._entries)
        logger.debug("%d of %d files need to be downloaded", len(broken), len(self._entries))

        dl = DownloadList()
        for entry in broken:
            dl.add(entry)

        dl.download(watcher)

    def _finalize_assets(self, watcher: Watcher) -> None:
        """Step called after download to copy assets to their legacy location.
        """

        for legacy_dir in (self._assets_virtual_dir, self._assets_resources_dir):
            if legacy_dir is None:
                continue
            for asset_id, asset_file in self._assets.items():
                dst_file = legacy_dir / asset_id
                try:
                    if dst_file.is_file() and calc_file_sha1(dst_file) == asset_file.name:
                        continue
                    dst_file.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copyfile(str(asset_file), str(dst_file))
                except OSError as error:
                    logger.warning("Failed to copy legacy asset %s: %s", asset_id, error)

    def _extract_natives(self, watcher: Watcher) -> None:
        """Extract the native libraries queued while resolving libraries.
        """

        if not len(self._natives):
            return

        natives_dir = self.config.natives_dir
        count = 0
        for native_file in self._natives:
            count += extract_all(native_file, natives_dir, exclude=("META-INF/",))

        watcher.handle(NativesExtractedEvent(count))

    def _run_processors(self, watcher: Watcher) -> None:
        """Run the loader's processors, if any.
        """

        assert self._desc is not None
        if not self._desc.processors:
            return

        java_path = self.config.jvm_path or self._jvm_path
        assert java_path is not None, "_resolve_jvm(...) missing"

        runner = ProcessorRunner(self.config, self._desc, java_path, save=self._save)
        count = runner.run(watcher)
        logger.debug("Executed %d processors", count)


def install(config: Config, *, watcher: Optional[Watcher] = None) -> VersionDescriptor:
    """Shortcut for installing the given configuration.
    """
    return Installer(config).install(watcher=watcher)


class VersionEvent:
    """Base class for events regarding version.
    """
    __slots__ = "version",
    def __init__(self, version: str) -> None:
        self.version = version

class VersionLoadingEvent(VersionEvent):
    """Event triggered when a version is being loaded.
    """
    __slots__ = tuple()

class VersionFetchingEvent(VersionEvent):
    """Event triggered when a version is being fetched.
    """
    __slots__ = tuple()

class VersionLoadedEvent(VersionEvent):
    """Event triggered when a version has been successfully loaded.
    """
    __slots__ = "fetched",
    def __init__(self, version: str, fetched: bool) -> None:
        super().__init__(version)
        self.fetched = fetched

class LoaderMergeEvent:
    """Event triggered when a mod loader is being merged into the fetched version.
    """
    __slots__ = "loader", "loader_version"
    def __init__(self, loader: str, loader_version: Optional[str]) -> None:
        self.loader = loader
        self.loader_version = loader_version

class AssetsResolveEvent:
    """Event triggered when assets start being resolved, and then when resolved with
    the number of assets.
    """
    __slots__ = "index_version", "count"
    def __init__(self, index_version: str, count: Optional[int]) -> None:
        self.index_version = index_version
        self.count = count

class JvmLoadedEvent:
    """Event triggered when JVM has been resolved.
    """

    MOJANG = "mojang"    # Mojang provided JVM
    CUSTOM = "custom"    # Custom JVM given with jvm_path

    __slots__ = "version", "kind"
    def __init__(self, version: Optional[str], kind: str) -> None:
        self.version = version
        self.kind = kind

class LibrariesResolvedEvent:
    """Event triggered when all libraries has been successfully resolved.
    """
    __slots__ = "class_libs_count", "native_libs_count"
    def __init__(self, class_libs_count: int, native_libs_count: int) -> None:
        self.class_libs_count = class_libs_count
        self.native_libs_count = native_libs_count

class NativesExtractedEvent:
    """Event triggered when native libraries have been extracted.
    """
    __slots__ = "count",
    def __init__(self, count: int) -> None:
        self.count = count


class VersionManifest:
    """The Mojang's official version manifest. Providing officially available versions
    with optional cache file.
    """

    def __init__(self, cache_file: Optional[Path] = None, url: Optional[str] = None) -> None:
        self.data: Optional[dict] = None
        self.cache_file = cache_file
        self.url = VERSION_MANIFEST_URL if url is None else url

    def _ensure_data(self) -> dict:
        """Internal method that ensure that the manifest data is up-to-date.

        :return: The full data of the manifest.
        :raises HttpError: Underlying HTTP error if manifest could not be requested.
        """

        if self.data is None:

            headers = {}
            cache_data = None

            # If a cache file should be used, try opening it and read the last modified
            # time that will be used for requesting the manifest, only if needed.
            if self.cache_file is not None:
                try:
                    with self.cache_file.open("rt") as cache_fp:
                        cache_data = json.load(cache_fp)
                    if "last_modified" in cache_data:
                        headers["If-Modified-Since"] = cache_data["last_modified"]
                except (OSError, JSONDecodeError):
                    pass

            try:

                res = http_request("GET", self.url,
                    headers=headers,
                    accept="application/json")

                data = res.json()
                if not isinstance(data, dict) or not isinstance(data.get("versions"), list):
                    raise ParseError("version manifest: /versions must be a list")

                if "Last-Modified" in res.headers:
                    data["last_modified"] = res.headers["Last-Modified"]

                if self.cache_file is not None:
                    self.cache_file.parent.mkdir(parents=True, exist_ok=True)
                    with self.cache_file.open("wt") as cache_fp:
                        json.dump(data, cache_fp)

                self.data = data

            except HttpError as error:
                # Checking for 0, which means network error, in such case we want to
                # ignore the network error and just use the cached data.
                if error.res.status in (0, 304) and cache_data is not None:
                    logger.debug("Using cached version manifest (status %d)", error.res.status)
                    self.data = cache_data
                else:
                    raise

        return self.data

    def get_version(self, version: str) -> Optional[dict]:
        """Get a manifest's version metadata. Containing the metadata's URL, its SHA1 and
        its type.

        :param version: The version identifier.
        :return: If found, the version is returned.
        :raises HttpError: Underlying HTTP error if manifest could not be requested.
        """
        for version_data in self.all_versions():
            if isinstance(version_data, dict) and version_data.get("id") == version:
                return version_data
        return None

    def all_versions(self) -> list:
        return self._ensure_data()["versions"]


def interpret_rule(rules: List[Rule]) -> bool:
    """Interpret rules and determine if the condition is met. Rules are checked in
    order, an applicable disallow rule excludes immediately. Rules guarded by features
    are never applicable because no feature is enabled when installing.
    """

    allowed = False
    for rule in rules:

        if not interpret_rule_os(rule):
            continue

        if rule.features is not None:
            continue

        if rule.action == "disallow":
            return False    # Early return because of disallow.
        else:
            allowed = True  # Only other possible value is "allow".

    return not len(rules) or allowed


def interpret_rule_os(rule: Rule) -> bool:
    """Interpret a rule constraint on the running OS.
    """
    if rule.os_name is None or rule.os_name == minecraft_os:
        if rule.os_arch is None or rule.os_arch == minecraft_arch:
            if rule.os_version is None or re.search(rule.os_version, platform.version()) is not None:
                return True
    return False


def jvm_platform(major_version: int) -> str:
    """Return the name of the platform used by Mojang for the Java runtimes of the host.
    Apple silicon only has runtimes for Java 9 and later.

    :raises UnsupportedArchitectureError: If no runtime is distributed for the host.
    """

    jvm_os = {
        "linux": {"x86": "linux-i386", "x86_64": "linux", "arm64": "linux"},
        "windows": {"x86": "windows-x86", "x86_64": "windows-x64", "arm64": "windows-arm64"},
        "osx": {"x86_64": "mac-os", "arm64": "mac-os" if major_version == 8 else "mac-os-arm64"},
    }.get(minecraft_os or "", {}).get(minecraft_arch or "")

    if jvm_os is None:
        raise UnsupportedArchitectureError(platform.system(), platform.machine())

    return jvm_os


def get_minecraft_dir() -> Path:
    """Internal function to get the default directory for installing
    and running Minecraft.
    """
    home = Path.home()
    return {
        "Windows": home.joinpath("AppData", "Roaming", ".minecraft"),
        "Darwin": home.joinpath("Library", "Application Support", "minecraft"),
    }.get(platform.system(), home / ".minecraft")


def _native_classifier(lib: Library) -> Optional[str]:
    """Return the native classifier of the library for the host, if any.
    """

    if lib.natives is not None:
        # Old metadata files provides a 'natives' mapping from OS to the classifier
        # specific for this OS.
        classifier = lib.natives.get(minecraft_os or "")
        if classifier is not None and minecraft_arch_bits is not None:
            classifier = classifier.replace("${arch}", str(minecraft_arch_bits))
        return classifier

    for classifier in (f"natives-{minecraft_os}", "natives-macos" if minecraft_os == "osx" else None):
        if classifier is not None and classifier in lib.classifiers:
            return classifier

    return None
