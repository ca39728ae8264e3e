"""Data model of the version descriptor, the resolved metadata from which the files to
install and the launch arguments are derived. Each class can be parsed from and written
back to the JSON format of the standard version metadata, parsing validates the
structure and raises a `ParseError` giving the path of the invalid value.
"""

from .error import ParseError
from .util import LibrarySpecifier

from typing import Optional, Dict, List, Any


__all__ = ["Artifact", "Rule", "Library", "JavaVersion", "AssetIndexRef",
    "DataVariable", "ProcessorStep", "VersionDescriptor"]


def _check(value: Any, kind: type, path: str, kind_name: str) -> Any:
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ParseError(f"{path} must be {kind_name}")
    return value

def _opt_str(obj: dict, key: str, path: str) -> Optional[str]:
    value = obj.get(key)
    return None if value is None else _check(value, str, f"{path}/{key}", "a string")

def _opt_int(obj: dict, key: str, path: str) -> Optional[int]:
    value = obj.get(key)
    return None if value is None else _check(value, int, f"{path}/{key}", "an integer")

def _str_list(value: Any, path: str) -> List[str]:
    _check(value, list, path, "a list")
    for i, item in enumerate(value):
        _check(item, str, f"{path}/{i}", "a string")
    return list(value)

def _str_dict(value: Any, path: str) -> Dict[str, str]:
    _check(value, dict, path, "an object")
    for key, item in value.items():
        _check(item, str, f"{path}/{key}", "a string")
    return dict(value)


class Artifact:
    """A downloadable file as described in metadata, the path is relative to the
    libraries directory and is only given for libraries.
    """

    __slots__ = "path", "url", "sha1", "size"

    def __init__(self, url: str, *, path: Optional[str] = None, sha1: str = "", size: Optional[int] = None) -> None:
        self.path = path
        self.url = url
        self.sha1 = sha1
        self.size = size

    @classmethod
    def from_json(cls, obj: Any, path: str) -> "Artifact":
        _check(obj, dict, path, "an object")
        url = _opt_str(obj, "url", path)
        return cls(url or "",
            path=_opt_str(obj, "path", path),
            sha1=_opt_str(obj, "sha1", path) or "",
            size=_opt_int(obj, "size", path))

    def to_json(self) -> dict:
        obj: Dict[str, Any] = {}
        if self.path is not None:
            obj["path"] = self.path
        obj["sha1"] = self.sha1
        if self.size is not None:
            obj["size"] = self.size
        obj["url"] = self.url
        return obj

    def __repr__(self) -> str:
        return f"<Artifact {self.url}>"


class Rule:
    """A rule allowing or disallowing something depending on the host's OS.
    """

    __slots__ = "action", "os_name", "os_arch", "os_version", "features"

    def __init__(self, action: str, *,
        os_name: Optional[str] = None,
        os_arch: Optional[str] = None,
        os_version: Optional[str] = None,
        features: Optional[Dict[str, Any]] = None
    ) -> None:
        self.action = action
        self.os_name = os_name
        self.os_arch = os_arch
        self.os_version = os_version
        self.features = features

    @classmethod
    def from_json(cls, obj: Any, path: str) -> "Rule":
        _check(obj, dict, path, "an object")
        action = obj.get("action")
        if action not in ("allow", "disallow"):
            raise ParseError(f"{path}/action must be 'allow' or 'disallow'")
        os_name = os_arch = os_version = None
        rule_os = obj.get("os")
        if rule_os is not None:
            _check(rule_os, dict, f"{path}/os", "an object")
            os_name = _opt_str(rule_os, "name", f"{path}/os")
            os_arch = _opt_str(rule_os, "arch", f"{path}/os")
            os_version = _opt_str(rule_os, "version", f"{path}/os")
        features = obj.get("features")
        if features is not None:
            _check(features, dict, f"{path}/features", "an object")
        return cls(action, os_name=os_name, os_arch=os_arch, os_version=os_version, features=features)

    def to_json(self) -> dict:
        obj: Dict[str, Any] = {"action": self.action}
        rule_os = {}
        if self.os_name is not None:
            rule_os["name"] = self.os_name
        if self.os_arch is not None:
            rule_os["arch"] = self.os_arch
        if self.os_version is not None:
            rule_os["version"] = self.os_version
        if len(rule_os):
            obj["os"] = rule_os
        if self.features is not None:
            obj["features"] = self.features
        return obj


class Library:
    """A library of the version, with its default artifact and optional classifiers for
    native libraries. Libraries with `skip_args` are only needed for the installation
    (processors) and don't contribute to the launch arguments.
    """

    __slots__ = "name", "artifact", "classifiers", "natives", "rules", "url", "extract", "skip_args"

    def __init__(self, name: str, *,
        artifact: Optional[Artifact] = None,
        classifiers: Optional[Dict[str, Artifact]] = None,
        natives: Optional[Dict[str, str]] = None,
        rules: Optional[List[Rule]] = None,
        url: Optional[str] = None,
        extract: Optional[dict] = None,
        skip_args: bool = False
    ) -> None:
        self.name = name
        self.artifact = artifact
        self.classifiers = classifiers or {}
        self.natives = natives
        self.rules = rules
        self.url = url
        self.extract = extract
        self.skip_args = skip_args

    @property
    def spec(self) -> LibrarySpecifier:
        """The parsed maven coordinate of this library.

        :raises ParseError: If the name is not a valid coordinate.
        """
        return LibrarySpecifier.from_str(self.name)

    @classmethod
    def from_json(cls, obj: Any, path: str) -> "Library":

        _check(obj, dict, path, "an object")

        name = obj.get("name")
        _check(name, str, f"{path}/name", "a string")

        artifact = None
        classifiers = {}
        downloads = obj.get("downloads")
        if downloads is not None:
            _check(downloads, dict, f"{path}/downloads", "an object")
            if downloads.get("artifact") is not None:
                artifact = Artifact.from_json(downloads["artifact"], f"{path}/downloads/artifact")
            raw_classifiers = downloads.get("classifiers")
            if raw_classifiers is not None:
                _check(raw_classifiers, dict, f"{path}/downloads/classifiers", "an object")
                for classifier, raw_artifact in raw_classifiers.items():
                    classifiers[classifier] = Artifact.from_json(raw_artifact, f"{path}/downloads/classifiers/{classifier}")

        natives = obj.get("natives")
        if natives is not None:
            natives = _str_dict(natives, f"{path}/natives")

        rules = obj.get("rules")
        if rules is not None:
            _check(rules, list, f"{path}/rules", "a list")
            rules = [Rule.from_json(rule, f"{path}/rules/{i}") for i, rule in enumerate(rules)]

        extract = obj.get("extract")
        if extract is not None:
            _check(extract, dict, f"{path}/extract", "an object")

        return cls(name,
            artifact=artifact,
            classifiers=classifiers,
            natives=natives,
            rules=rules,
            url=_opt_str(obj, "url", path),
            extract=extract,
            skip_args=bool(obj.get("skipArgs", False)))

    def to_json(self) -> dict:
        obj: Dict[str, Any] = {"name": self.name}
        downloads: Dict[str, Any] = {}
        if self.artifact is not None:
            downloads["artifact"] = self.artifact.to_json()
        if len(self.classifiers):
            downloads["classifiers"] = {key: artifact.to_json() for key, artifact in self.classifiers.items()}
        if len(downloads):
            obj["downloads"] = downloads
        if self.natives is not None:
            obj["natives"] = self.natives
        if self.rules is not None:
            obj["rules"] = [rule.to_json() for rule in self.rules]
        if self.url is not None:
            obj["url"] = self.url
        if self.extract is not None:
            obj["extract"] = self.extract
        if self.skip_args:
            obj["skipArgs"] = True
        return obj

    def __repr__(self) -> str:
        return f"<Library {self.name}>"


class JavaVersion:
    """The Java runtime required by a version, component is the name of Mojang's runtime
    distribution.
    """

    __slots__ = "component", "major_version"

    def __init__(self, component: str = "jre-legacy", major_version: int = 8) -> None:
        self.component = component
        self.major_version = major_version

    @classmethod
    def from_json(cls, obj: Any, path: str) -> "JavaVersion":
        _check(obj, dict, path, "an object")
        return cls(_opt_str(obj, "component", path) or "jre-legacy",
            _opt_int(obj, "majorVersion", path) or 8)

    def to_json(self) -> dict:
        return {"component": self.component, "majorVersion": self.major_version}


class AssetIndexRef:
    """Reference to the assets index of a version.
    """

    __slots__ = "id", "url", "sha1", "size", "total_size"

    def __init__(self, id: str, url: str, sha1: str = "", size: Optional[int] = None, total_size: Optional[int] = None) -> None:
        self.id = id
        self.url = url
        self.sha1 = sha1
        self.size = size
        self.total_size = total_size

    @classmethod
    def from_json(cls, obj: Any, path: str) -> "AssetIndexRef":
        _check(obj, dict, path, "an object")
        index_id = obj.get("id")
        _check(index_id, str, f"{path}/id", "a string")
        url = obj.get("url")
        _check(url, str, f"{path}/url", "a string")
        return cls(index_id, url,
            _opt_str(obj, "sha1", path) or "",
            _opt_int(obj, "size", path),
            _opt_int(obj, "totalSize", path))

    def to_json(self) -> dict:
        obj: Dict[str, Any] = {"id": self.id, "sha1": self.sha1, "url": self.url}
        if self.size is not None:
            obj["size"] = self.size
        if self.total_size is not None:
            obj["totalSize"] = self.total_size
        return obj


class DataVariable:
    """A variable of an installer, with a value for each side.
    """

    __slots__ = "client", "server"

    def __init__(self, client: str, server: str = "") -> None:
        self.client = client
        self.server = server

    @classmethod
    def from_json(cls, obj: Any, path: str) -> "DataVariable":
        _check(obj, dict, path, "an object")
        return cls(_opt_str(obj, "client", path) or "", _opt_str(obj, "server", path) or "")

    def to_json(self) -> dict:
        return {"client": self.client, "server": self.server}

    def __repr__(self) -> str:
        return f"<DataVariable {self.client!r}>"


class ProcessorStep:
    """A post-install processor, a JAR program to run with the given class path and
    arguments. The success flag is persisted with the descriptor so that a completed
    step is never run again.
    """

    __slots__ = "jar", "classpath", "args", "sides", "outputs", "success"

    def __init__(self, jar: str, classpath: List[str], args: List[str], *,
        sides: Optional[List[str]] = None,
        outputs: Optional[Dict[str, str]] = None,
        success: bool = False
    ) -> None:
        self.jar = jar
        self.classpath = classpath
        self.args = args
        self.sides = sides
        self.outputs = outputs or {}
        self.success = success

    def is_client(self) -> bool:
        """Return true if this processor should run for a client install.
        """
        return self.sides is None or "client" in self.sides

    @classmethod
    def from_json(cls, obj: Any, path: str) -> "ProcessorStep":
        _check(obj, dict, path, "an object")
        jar = obj.get("jar")
        _check(jar, str, f"{path}/jar", "a string")
        sides = obj.get("sides")
        if sides is not None:
            sides = _str_list(sides, f"{path}/sides")
        outputs = obj.get("outputs")
        if outputs is not None:
            outputs = _str_dict(outputs, f"{path}/outputs")
        return cls(jar,
            _str_list(obj.get("classpath", []), f"{path}/classpath"),
            _str_list(obj.get("args", []), f"{path}/args"),
            sides=sides,
            outputs=outputs,
            success=_check(obj.get("success", False), bool, f"{path}/success", "a boolean"))

    def to_json(self) -> dict:
        obj: Dict[str, Any] = {"jar": self.jar, "classpath": self.classpath, "args": self.args}
        if self.sides is not None:
            obj["sides"] = self.sides
        if len(self.outputs):
            obj["outputs"] = self.outputs
        obj["success"] = self.success
        return obj

    def __repr__(self) -> str:
        return f"<ProcessorStep {self.jar} success={self.success}>"


class VersionDescriptor:
    """The resolved metadata of a version: what to install and how to launch it. Unknown
    keys of the metadata are kept as-is in `extra` and written back.
    """

    def __init__(self, id: str, main_class: str) -> None:
        self.id = id
        self.main_class = main_class
        self.libraries: List[Library] = []
        self.jvm_args: List[Any] = []
        self.game_args: List[Any] = []
        self.legacy_args: Optional[str] = None
        self.java_version: Optional[JavaVersion] = None
        self.downloads: Dict[str, Artifact] = {}
        self.asset_index: Optional[AssetIndexRef] = None
        self.assets: Optional[str] = None
        self.data: Optional[Dict[str, DataVariable]] = None
        self.processors: Optional[List[ProcessorStep]] = None
        self.extra: Dict[str, Any] = {}

    @property
    def client(self) -> Optional[Artifact]:
        """The client JAR download, if any.
        """
        return self.downloads.get("client")

    @classmethod
    def from_json(cls, obj: Any) -> "VersionDescriptor":
        """Parse a descriptor from the version metadata.

        :raises ParseError: If the metadata is malformed.
        """

        _check(obj, dict, "metadata: /", "an object")
        obj = dict(obj)

        version_id = obj.pop("id", None)
        _check(version_id, str, "metadata: /id", "a string")
        main_class = obj.pop("mainClass", None)
        _check(main_class, str, "metadata: /mainClass", "a string")

        desc = cls(version_id, main_class)

        libraries = obj.pop("libraries", [])
        _check(libraries, list, "metadata: /libraries", "a list")
        desc.libraries = [Library.from_json(lib, f"metadata: /libraries/{i}") for i, lib in enumerate(libraries)]

        arguments = obj.pop("arguments", None)
        if arguments is not None:
            _check(arguments, dict, "metadata: /arguments", "an object")
            desc.jvm_args = list(_check(arguments.get("jvm", []), list, "metadata: /arguments/jvm", "a list"))
            desc.game_args = list(_check(arguments.get("game", []), list, "metadata: /arguments/game", "a list"))

        desc.legacy_args = _opt_str(obj, "minecraftArguments", "metadata: ")
        obj.pop("minecraftArguments", None)

        java_version = obj.pop("javaVersion", None)
        if java_version is not None:
            desc.java_version = JavaVersion.from_json(java_version, "metadata: /javaVersion")

        downloads = obj.pop("downloads", None)
        if downloads is not None:
            _check(downloads, dict, "metadata: /downloads", "an object")
            for key, raw_artifact in downloads.items():
                desc.downloads[key] = Artifact.from_json(raw_artifact, f"metadata: /downloads/{key}")

        asset_index = obj.pop("assetIndex", None)
        if asset_index is not None:
            desc.asset_index = AssetIndexRef.from_json(asset_index, "metadata: /assetIndex")

        desc.assets = _opt_str(obj, "assets", "metadata: ")
        obj.pop("assets", None)

        data = obj.pop("data", None)
        if data is not None:
            _check(data, dict, "metadata: /data", "an object")
            desc.data = {key: DataVariable.from_json(value, f"metadata: /data/{key}") for key, value in data.items()}

        processors = obj.pop("processors", None)
        if processors is not None:
            _check(processors, list, "metadata: /processors", "a list")
            desc.processors = [ProcessorStep.from_json(proc, f"metadata: /processors/{i}") for i, proc in enumerate(processors)]

        desc.extra = obj
        return desc

    def to_json(self) -> dict:
        obj: Dict[str, Any] = dict(self.extra)
        obj["id"] = self.id
        obj["mainClass"] = self.main_class
        obj["libraries"] = [lib.to_json() for lib in self.libraries]
        if len(self.jvm_args) or len(self.game_args):
            obj["arguments"] = {"game": self.game_args, "jvm": self.jvm_args}
        if self.legacy_args is not None:
            obj["minecraftArguments"] = self.legacy_args
        if self.java_version is not None:
            obj["javaVersion"] = self.java_version.to_json()
        if len(self.downloads):
            obj["downloads"] = {key: artifact.to_json() for key, artifact in self.downloads.items()}
        if self.asset_index is not None:
            obj["assetIndex"] = self.asset_index.to_json()
        if self.assets is not None:
            obj["assets"] = self.assets
        if self.data is not None:
            obj["data"] = {key: var.to_json() for key, var in self.data.items()}
        if self.processors is not None:
            obj["processors"] = [proc.to_json() for proc in self.processors]
        return obj

    def __repr__(self) -> str:
        return f"<VersionDescriptor {self.id}>"
