import pytest

from lapis import cli
from lapis.cli import register_arguments, new_loader, cmd_install, main
from lapis.fabric import FabricLoader
from lapis.forge import ForgeLoader, NeoForgeLoader
from lapis.meta import VersionDescriptor
from lapis.error import VersionNotFoundError


def _parse(*args):
    return register_arguments().parse_args(["install", *args])


def test_arguments(tmp_path):

    ns = _parse("1.21.4")
    assert ns.version == "1.21.4"
    assert ns.main_dir is None and ns.name is None and ns.jvm is None
    assert ns.verbose == 0
    assert type(new_loader(ns)).__name__ == "Loader"

    ns = _parse("--main-dir", str(tmp_path), "-vv", "--name", "custom", "--fabric", "0.16.9", "1.21.4")
    assert ns.main_dir == tmp_path
    assert ns.verbose == 2
    loader = new_loader(ns)
    assert isinstance(loader, FabricLoader) and loader.name == "fabric" and loader.version == "0.16.9"

    assert new_loader(_parse("--quilt", "0.27.1", "1.21.4")).name == "quilt"
    assert isinstance(new_loader(_parse("--forge", "54.0.12", "1.21.4")), ForgeLoader)
    assert isinstance(new_loader(_parse("--neoforge", "21.4.75", "1.21.4")), NeoForgeLoader)

    with pytest.raises(SystemExit):
        _parse("--fabric", "0.16.9", "--forge", "54.0.12", "1.21.4")


def test_no_subcommand():
    with pytest.raises(SystemExit) as exc_info:
        main([])
    assert exc_info.value.code == cli.EXIT_FAILURE


def test_cmd_install(monkeypatch, capsys, tmp_path):

    def install_ok(config, *, watcher=None):
        assert config.version_name == "custom"
        return VersionDescriptor(config.version, "net.minecraft.client.main.Main")

    monkeypatch.setattr(cli, "install", install_ok)
    assert cmd_install(_parse("--main-dir", str(tmp_path), "--name", "custom", "1.21.4")) == cli.EXIT_OK
    assert "net.minecraft.client.main.Main" in capsys.readouterr().out

    def install_not_found(config, *, watcher=None):
        raise VersionNotFoundError(config.version)

    monkeypatch.setattr(cli, "install", install_not_found)
    assert cmd_install(_parse("--main-dir", str(tmp_path), "0.0.0")) == cli.EXIT_FAILURE
    assert "version not found: 0.0.0" in capsys.readouterr().err
