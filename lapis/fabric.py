"""Definition of the Fabric and Quilt mod loaders, both share the same meta API so the
same logic is used for both of them.
"""

import logging

from .loader import Loader, remove_libraries, profile_library, extend_arguments
from .meta import VersionDescriptor
from .error import VersionNotFoundError, ParseError
from .http import http_json, HttpError

from typing import TYPE_CHECKING, List, Any

if TYPE_CHECKING:
    from .standard import Config


__all__ = ["FabricApi", "FABRIC_API", "QUILT_API", "FabricLoader"]

logger = logging.getLogger(__name__)


class FabricApi:
    """This class is internally used to defined two constant for both official Fabric
    backend API and Quilt API which have the same endpoints. So we use the same logic
    for both mod loaders.
    """

    def __init__(self, name: str, api_url: str) -> None:
        self.name = name
        self.api_url = api_url

    def request_fabric_meta(self, method: str) -> Any:
        """Generic HTTP request to the fabric's REST API.
        """
        return http_json(f"{self.api_url}{method}")

    def request_loaders(self) -> List[str]:
        """Return the versions of all loader builds, latest first.
        """
        return self._request_versions("versions/loader")

    def request_game_versions(self) -> List[str]:
        """Return all game versions supported by the loader.
        """
        return self._request_versions("versions/game")

    def request_version_loader_profile(self, vanilla_version: str, loader_version: str) -> dict:
        """Return the version profile for the given vanilla version and loader.
        """
        profile = self.request_fabric_meta(f"versions/loader/{vanilla_version}/{loader_version}/profile/json")
        if not isinstance(profile, dict):
            raise ParseError(f"{self.name} profile: / must be an object")
        return profile

    def _request_versions(self, method: str) -> List[str]:
        entries = self.request_fabric_meta(method)
        if not isinstance(entries, list):
            raise ParseError(f"{self.name} {method}: / must be a list")
        versions = []
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict) or not isinstance(entry.get("version"), str):
                raise ParseError(f"{self.name} {method}: /{i}/version must be a string")
            versions.append(entry["version"])
        return versions

    def __repr__(self) -> str:
        return f"<FabricApi {self.name}>"


FABRIC_API = FabricApi("fabric", "https://meta.fabricmc.net/v2/")
QUILT_API = FabricApi("quilt", "https://meta.quiltmc.org/v3/")


class FabricLoader(Loader):
    """Fabric or Quilt loader, depending on the API given.
    """

    def __init__(self, api: FabricApi, loader_version: str) -> None:
        super().__init__(loader_version)
        self.api = api

    @property
    def name(self) -> str:
        return self.api.name

    @classmethod
    def fabric(cls, loader_version: str) -> "FabricLoader":
        """Construct a Fabric loader of the given version.
        """
        return cls(FABRIC_API, loader_version)

    @classmethod
    def quilt(cls, loader_version: str) -> "FabricLoader":
        """Construct a Quilt loader of the given version.
        """
        return cls(QUILT_API, loader_version)

    def merge(self, config: "Config", desc: VersionDescriptor, watcher: Any) -> VersionDescriptor:

        api = self.api
        loader_version = str(self.version)

        if loader_version not in api.request_loaders():
            raise VersionNotFoundError(f"{api.name}-loader-{loader_version}")
        if desc.id not in api.request_game_versions():
            raise VersionNotFoundError(f"{api.name}-{desc.id}")

        try:
            profile = api.request_version_loader_profile(desc.id, loader_version)
        except HttpError as error:
            if error.res.status not in (404, 400):
                raise
            # Correct error if the error is just a not found.
            raise VersionNotFoundError(f"{api.name}-{desc.id}-{loader_version}")

        profile_path = f"{api.name} profile: "

        main_class = profile.get("mainClass")
        if not isinstance(main_class, str):
            raise ParseError(f"{profile_path}/mainClass must be a string")

        profile_libraries = profile.get("libraries", [])
        if not isinstance(profile_libraries, list):
            raise ParseError(f"{profile_path}/libraries must be a list")

        libraries = [profile_library(lib, f"{profile_path}/libraries/{i}") for i, lib in enumerate(profile_libraries)]

        removed = remove_libraries(desc, libraries)
        logger.debug("Replaced %d vanilla libraries with %s ones", removed, api.name)

        desc.libraries.extend(libraries)
        extend_arguments(desc, profile.get("arguments"), f"{profile_path}/arguments")
        desc.main_class = main_class

        return desc
