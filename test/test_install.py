"""Functional tests of the game's installation, against a local server standing for
Mojang's metadata and resources servers, and the mod loaders' ones.
"""

from zipfile import ZipFile
from pathlib import Path
from io import BytesIO
import subprocess
import hashlib
import json
import os
import pytest

from lapis import standard
from lapis.standard import Config, Installer, install, \
    VersionLoadedEvent, LoaderMergeEvent, AssetsResolveEvent, JvmLoadedEvent, \
    LibrariesResolvedEvent, NativesExtractedEvent, DownloadStartEvent, \
    ProcessorStartEvent, ProcessorDoneEvent
from lapis.fabric import FabricApi, FabricLoader
from lapis.forge import NeoForgeLoader
from lapis.error import VersionNotFoundError, NotFoundError, ProcessorError, ParseError

from conftest import CollectWatcher


JVM_PATH = Path("/opt/java/bin/java")


def _sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def _zip_bytes(entries: dict) -> bytes:
    buffer = BytesIO()
    with ZipFile(buffer, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def _artifact(server, path: str, data: bytes, *, with_path: bool = True) -> dict:
    url = server.add(path, data)
    artifact = {"sha1": _sha1(data), "size": len(data), "url": url}
    if with_path:
        artifact["path"] = path.split("/", 1)[1]
    return artifact


class VanillaFiles:
    """Files of the vanilla version served by the local server.
    """

    def __init__(self, server) -> None:

        self.client = b"client jar content"
        self.lwjgl = b"lwjgl jar content"
        self.natives = _zip_bytes({
            "META-INF/MANIFEST.MF": "Manifest-Version: 1.0\n",
            "liblwjgl.so": b"native library",
        })
        self.assets = {
            "icons/icon_16x16.png": b"icon content",
            "minecraft/sounds.json": b"{\"sounds\": {}}",
        }

        for data in self.assets.values():
            server.add(f"resources/{_sha1(data)[:2]}/{_sha1(data)}", data)

        index = json.dumps({
            "objects": {name: {"hash": _sha1(data), "size": len(data)} for name, data in self.assets.items()},
            "virtual": True
        }).encode()

        natives_artifact = _artifact(server, "libraries/org/lwjgl/lwjgl-platform/3.3.3/lwjgl-platform-3.3.3-natives-linux.jar", self.natives)

        self.meta = {
            "id": "1.21.4",
            "type": "release",
            "mainClass": "net.minecraft.client.main.Main",
            "assetIndex": {
                "id": "19",
                "sha1": _sha1(index),
                "size": len(index),
                "totalSize": sum(len(data) for data in self.assets.values()),
                "url": server.add("v1/packages/19.json", index)
            },
            "assets": "19",
            "downloads": {"client": _artifact(server, "v1/objects/client.jar", self.client, with_path=False)},
            "javaVersion": {"component": "java-runtime-delta", "majorVersion": 21},
            "arguments": {
                "game": ["--username", "${auth_player_name}", "--version", "${version_name}"],
                "jvm": ["-Djava.library.path=${natives_directory}", "-cp", "${classpath}"]
            },
            "libraries": [
                {
                    "name": "org.lwjgl:lwjgl:3.3.3",
                    "downloads": {"artifact": _artifact(server, "libraries/org/lwjgl/lwjgl/3.3.3/lwjgl-3.3.3.jar", self.lwjgl)}
                },
                {
                    "name": "org.lwjgl:lwjgl-platform:3.3.3",
                    "natives": {"linux": "natives-linux", "osx": "natives-osx", "windows": "natives-windows"},
                    "downloads": {"classifiers": {
                        "natives-linux": natives_artifact,
                        "natives-osx": natives_artifact,
                        "natives-windows": natives_artifact,
                    }}
                },
                {
                    "name": "ca.weblite:java-objc-bridge:1.1",
                    "downloads": {"artifact": {
                        "path": "ca/weblite/java-objc-bridge/1.1/java-objc-bridge-1.1.jar",
                        "sha1": "1227f9e0666314f9de41477e3ec277e542ed7f7b",
                        "size": 1330045,
                        "url": f"{server.url}not_served.jar"
                    }},
                    "rules": [{"action": "allow", "os": {"name": "osx"}}]
                }
            ]
        }

        manifest = json.dumps({
            "latest": {"release": "1.21.4", "snapshot": "1.21.4"},
            "versions": [
                {"id": "1.21.4", "type": "release", "url": server.add("v1/packages/1.21.4.json", json.dumps(self.meta).encode())},
                {"id": "1.21.3", "type": "release", "url": f"{server.url}v1/packages/1.21.3.json"},
            ]
        }).encode()

        self.manifest_path = "/mc/game/version_manifest_v2.json"
        self.manifest_url = server.add(self.manifest_path, manifest)


@pytest.fixture
def vanilla(http_server, monkeypatch):
    files = VanillaFiles(http_server)
    monkeypatch.setattr(standard, "VERSION_MANIFEST_URL", files.manifest_url)
    monkeypatch.setattr(standard, "RESOURCES_URL", f"{http_server.url}resources/")
    monkeypatch.setattr(standard, "minecraft_os", "linux")
    monkeypatch.setattr(standard, "minecraft_arch", "x86_64")
    return files


def test_install_vanilla(http_server, tmp_context, vanilla):

    config = Config("1.21.4", context=tmp_context, jvm_path=JVM_PATH)
    watcher = CollectWatcher()
    desc = Installer(config).install(watcher=watcher)

    assert desc.id == "1.21.4"
    assert desc.main_class == "net.minecraft.client.main.Main"

    loaded = watcher.of_type(VersionLoadedEvent)
    assert len(loaded) == 1 and loaded[0].fetched

    assets_events = watcher.of_type(AssetsResolveEvent)
    assert [e.count for e in assets_events] == [None, 2]

    jvm_events = watcher.of_type(JvmLoadedEvent)
    assert len(jvm_events) == 1 and jvm_events[0].kind == JvmLoadedEvent.CUSTOM

    libs_events = watcher.of_type(LibrariesResolvedEvent)
    assert (libs_events[0].class_libs_count, libs_events[0].native_libs_count) == (1, 1)

    # Client, two assets, lwjgl and its natives, the osx only library is excluded.
    start_events = watcher.of_type(DownloadStartEvent)
    assert len(start_events) == 1 and start_events[0].entries_count == 5
    assert http_server.hits["/not_served.jar"] == 0

    versions_dir = tmp_context.versions_dir
    assert (versions_dir / "1.21.4" / "1.21.4.jar").read_bytes() == vanilla.client
    with (versions_dir / "1.21.4" / "1.21.4.json").open("rb") as fp:
        assert json.load(fp) == vanilla.meta

    libraries_dir = tmp_context.libraries_dir
    assert (libraries_dir / "org/lwjgl/lwjgl/3.3.3/lwjgl-3.3.3.jar").read_bytes() == vanilla.lwjgl
    assert (libraries_dir / "org/lwjgl/lwjgl-platform/3.3.3/lwjgl-platform-3.3.3-natives-linux.jar").read_bytes() == vanilla.natives

    assets_dir = tmp_context.assets_dir
    assert (assets_dir / "indexes" / "19.json").is_file()
    for name, data in vanilla.assets.items():
        assert (assets_dir / "objects" / _sha1(data)[:2] / _sha1(data)).read_bytes() == data
        assert (assets_dir / "virtual" / "legacy" / name).read_bytes() == data

    natives_dir = tmp_context.natives_dir / "1.21.4"
    assert (natives_dir / "liblwjgl.so").read_bytes() == b"native library"
    assert not (natives_dir / "META-INF").exists()
    assert watcher.of_type(NativesExtractedEvent)[0].count == 1

    # Installing again doesn't fetch or download anything.
    watcher = CollectWatcher()
    manifest_hits = http_server.hits[vanilla.manifest_path]
    install(config, watcher=watcher)

    loaded = watcher.of_type(VersionLoadedEvent)
    assert len(loaded) == 1 and not loaded[0].fetched
    assert not watcher.of_type(DownloadStartEvent)
    assert not watcher.of_type(NativesExtractedEvent)
    assert http_server.hits[vanilla.manifest_path] == manifest_hits


def test_install_repair(http_server, tmp_context, vanilla):

    config = Config("1.21.4", context=tmp_context, jvm_path=JVM_PATH)
    install(config)

    lwjgl_path = "/libraries/org/lwjgl/lwjgl/3.3.3/lwjgl-3.3.3.jar"
    lwjgl_file = tmp_context.libraries_dir / "org/lwjgl/lwjgl/3.3.3/lwjgl-3.3.3.jar"
    lwjgl_file.write_bytes(b"corrupted")
    (tmp_context.versions_dir / "1.21.4" / "1.21.4.jar").unlink()

    watcher = CollectWatcher()
    install(config, watcher=watcher)

    # Only the corrupted and missing files are downloaded again.
    start_events = watcher.of_type(DownloadStartEvent)
    assert len(start_events) == 1 and start_events[0].entries_count == 2
    assert http_server.hits[lwjgl_path] == 2
    assert lwjgl_file.read_bytes() == vanilla.lwjgl
    assert (tmp_context.versions_dir / "1.21.4" / "1.21.4.jar").read_bytes() == vanilla.client


def test_install_not_found(tmp_context, vanilla):

    with pytest.raises(VersionNotFoundError):
        install(Config("1.7.10", context=tmp_context, jvm_path=JVM_PATH))

    assert not (tmp_context.versions_dir / "1.7.10").exists()


def test_install_fabric(http_server, tmp_context, vanilla):

    loader_data = b"fabric loader content"
    intermediary_data = b"intermediary content"
    http_server.add("maven/net/fabricmc/fabric-loader/0.16.9/fabric-loader-0.16.9.jar", loader_data)
    http_server.add("maven/net/fabricmc/intermediary/1.21.4/intermediary-1.21.4.jar", intermediary_data)

    http_server.add("fabric/versions/game", json.dumps([{"version": "1.21.4", "stable": True}]).encode())
    http_server.add("fabric/versions/loader", json.dumps([{"version": "0.16.9", "stable": True}]).encode())
    http_server.add("fabric/versions/loader/1.21.4/0.16.9/profile/json", json.dumps({
        "id": "fabric-loader-0.16.9-1.21.4",
        "inheritsFrom": "1.21.4",
        "mainClass": "net.fabricmc.loader.impl.launch.knot.KnotClient",
        "arguments": {"game": [], "jvm": []},
        "libraries": [
            {"name": "net.fabricmc:intermediary:1.21.4", "url": f"{http_server.url}maven/"},
            {"name": "net.fabricmc:fabric-loader:0.16.9", "url": f"{http_server.url}maven/", "sha1": _sha1(loader_data), "size": len(loader_data)},
        ]
    }).encode())

    loader = FabricLoader(FabricApi("fabric", f"{http_server.url}fabric/"), "0.16.9")
    config = Config("1.21.4", context=tmp_context, loader=loader, jvm_path=JVM_PATH)
    watcher = CollectWatcher()
    desc = install(config, watcher=watcher)

    merge_events = watcher.of_type(LoaderMergeEvent)
    assert len(merge_events) == 1
    assert (merge_events[0].loader, merge_events[0].loader_version) == ("fabric", "0.16.9")

    assert desc.main_class == "net.fabricmc.loader.impl.launch.knot.KnotClient"

    version_dir = tmp_context.versions_dir / "1.21.4-0.16.9"
    assert (version_dir / "1.21.4-0.16.9.jar").read_bytes() == vanilla.client
    with (version_dir / "1.21.4-0.16.9.json").open("rb") as fp:
        assert json.load(fp)["mainClass"] == "net.fabricmc.loader.impl.launch.knot.KnotClient"

    libraries_dir = tmp_context.libraries_dir
    assert (libraries_dir / "net/fabricmc/fabric-loader/0.16.9/fabric-loader-0.16.9.jar").read_bytes() == loader_data
    assert (libraries_dir / "net/fabricmc/intermediary/1.21.4/intermediary-1.21.4.jar").read_bytes() == intermediary_data


class FakeJava:
    """Replacement of `subprocess.run` acting as the patching processor, writing the
    patched client to the output argument.
    """

    def __init__(self, returncode: int = 0):
        self.calls = []
        self.returncode = returncode

    def __call__(self, args, **kwargs):
        self.calls.append(args)
        if self.returncode != 0:
            return subprocess.CompletedProcess(args, self.returncode, b"", b"patching failed")
        output = args[args.index("--output") + 1]
        os.makedirs(os.path.dirname(output), exist_ok=True)
        with open(output, "wb") as fp:
            fp.write(b"patched client")
        return subprocess.CompletedProcess(args, 0, b"", b"")


def _serve_neoforge(server) -> str:

    install_profile = {
        "spec": 1,
        "minecraft": "1.21.4",
        "json": "/version.json",
        "data": {
            "PATCHED": {"client": "[net.neoforged:minecraft-client-patched:21.4.75]", "server": "[net.neoforged:minecraft-server-patched:21.4.75]"},
            "PATCHED_SHA": {"client": f"'{_sha1(b'patched client')}'", "server": "''"},
            "BINPATCH": {"client": "/data/client.lzma", "server": "/data/server.lzma"},
        },
        "processors": [
            {
                "jar": "net.neoforged.installertools:binarypatcher:2.1.7",
                "classpath": [],
                "args": ["--clean", "{MINECRAFT_JAR}", "--output", "{PATCHED}", "--apply", "{BINPATCH}"],
                "outputs": {"{PATCHED}": "{PATCHED_SHA}"}
            }
        ],
        "libraries": [
            {
                "name": "net.neoforged.installertools:binarypatcher:2.1.7",
                "downloads": {"artifact": {"url": "", "sha1": "", "size": 0}}
            }
        ]
    }

    version = {
        "id": "neoforge-21.4.75",
        "inheritsFrom": "1.21.4",
        "mainClass": "cpw.mods.bootstraplauncher.BootstrapLauncher",
        "arguments": {"game": ["--fml.neoForgeVersion", "21.4.75"], "jvm": []},
        "libraries": [
            {
                "name": "net.neoforged:neoforge:21.4.75:universal",
                "downloads": {"artifact": {"url": "", "sha1": "", "size": 0}}
            },
            {
                "name": "net.neoforged:minecraft-client-patched:21.4.75",
                "downloads": {"artifact": {"url": "", "sha1": "", "size": 0}}
            }
        ]
    }

    installer = _zip_bytes({
        "install_profile.json": json.dumps(install_profile),
        "version.json": json.dumps(version),
        "data/client.lzma": b"client patches",
        "data/server.lzma": b"server patches",
        "maven/net/neoforged/neoforge/21.4.75/neoforge-21.4.75-universal.jar": b"neoforge",
        "maven/net/neoforged/installertools/binarypatcher/2.1.7/binarypatcher-2.1.7.jar": _zip_bytes({
            "META-INF/MANIFEST.MF": "Manifest-Version: 1.0\nMain-Class: net.neoforged.binarypatcher.ConsoleTool\n",
        }),
    })

    server.add("neoforge/net/neoforged/neoforge/21.4.75/neoforge-21.4.75-installer.jar", installer)
    return f"{server.url}neoforge/"


def test_install_neoforge(http_server, tmp_context, vanilla, monkeypatch):

    loader = NeoForgeLoader("21.4.75")
    loader.repo_url = _serve_neoforge(http_server)
    config = Config("1.21.4", context=tmp_context, loader=loader, jvm_path=JVM_PATH)

    # The patched client isn't produced yet, and no processor ran.
    failing_java = FakeJava(returncode=1)
    monkeypatch.setattr(subprocess, "run", failing_java)
    with pytest.raises(ProcessorError):
        install(config)
    assert len(failing_java.calls) == 1

    with (config.version_json_file).open("rb") as fp:
        assert json.load(fp)["processors"][0]["success"] is False

    # Resuming the install runs the processor again.
    java = FakeJava()
    monkeypatch.setattr(subprocess, "run", java)
    watcher = CollectWatcher()
    desc = install(config, watcher=watcher)

    assert len(java.calls) == 1
    assert java.calls[0][0] == str(JVM_PATH)
    assert java.calls[0][3] == "net.neoforged.binarypatcher.ConsoleTool"
    assert java.calls[0][5] == str(config.version_jar_file.absolute())
    assert len(watcher.of_type(ProcessorStartEvent)) == 1
    assert len(watcher.of_type(ProcessorDoneEvent)) == 1

    assert desc.main_class == "cpw.mods.bootstraplauncher.BootstrapLauncher"
    assert desc.processors is not None and desc.processors[0].success
    with (config.version_json_file).open("rb") as fp:
        assert json.load(fp)["processors"][0]["success"] is True

    patched = tmp_context.libraries_dir / "net/neoforged/minecraft-client-patched/21.4.75/minecraft-client-patched-21.4.75.jar"
    assert patched.read_bytes() == b"patched client"

    # Complete install, nothing is run again.
    java = FakeJava()
    monkeypatch.setattr(subprocess, "run", java)
    watcher = CollectWatcher()
    install(config, watcher=watcher)
    assert not java.calls
    assert not watcher.of_type(DownloadStartEvent)


def test_install_missing_library(http_server, tmp_context, vanilla, monkeypatch):

    loader = NeoForgeLoader("21.4.75")
    loader.repo_url = _serve_neoforge(http_server)
    config = Config("1.21.4", context=tmp_context, loader=loader, jvm_path=JVM_PATH)

    monkeypatch.setattr(subprocess, "run", FakeJava())
    install(config)

    # A library without download URL can't be repaired.
    (tmp_context.libraries_dir / "net/neoforged/neoforge/21.4.75/neoforge-21.4.75-universal.jar").unlink()
    with pytest.raises(NotFoundError):
        install(config)


def test_install_malformed_jvm(http_server, tmp_context, vanilla, monkeypatch):

    config = Config("1.21.4", context=tmp_context)

    manifest_url = http_server.add("v1/packages/java-runtime-delta.json", json.dumps({"files": {}}).encode())
    http_server.add("java-runtime/all.json", json.dumps({
        "linux": {"java-runtime-delta": [{"manifest": {"url": manifest_url}, "version": "21.0.3"}]}
    }).encode())
    monkeypatch.setattr(standard, "JVM_META_URL", f"{http_server.url}java-runtime/all.json")

    with pytest.raises(ParseError) as exc_info:
        install(config)
    assert str(exc_info.value) == "jvm metadata: /linux/java-runtime-delta/0/version must be an object"

    # Cached runtime manifest with a malformed file.
    runtime_dir = tmp_context.runtime_dir
    runtime_dir.mkdir(parents=True, exist_ok=True)
    (runtime_dir / "java-runtime-delta.json").write_text(json.dumps({
        "files": {"bin/java": {"type": "file", "downloads": ["raw"]}}
    }))

    with pytest.raises(ParseError) as exc_info:
        install(config)
    assert str(exc_info.value) == "jvm manifest: /files/bin/java/downloads must be an object"
