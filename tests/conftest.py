"""Shared fixtures: a scripted stand-in for external build tools.

FakeToolchain replaces subprocess.Popen/subprocess.run as used by
builds/runner.py. Rules match commands by tokens and may create files to
mimic what git, make, patch and dpkg-deb would leave on disk.
"""

import io
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from unittest.mock import patch

import pytest

from wlanpi_kernel_builder.config import Settings
from wlanpi_kernel_builder.profiles.schema import BuildProfile

RELEASE = "6.12.1-v8+"
REVISION = "0123456789abcdef0123456789abcdef01234567"

Action = Callable[[list[str], Path | None], None]


@dataclass
class Call:
    """One recorded command invocation."""

    cmd: list[str]
    cwd: Path | None
    env: dict[str, str] | None


@dataclass
class _Rule:
    tokens: tuple[str, ...]
    returncode: int
    stdout: str
    action: Action | None


class _FakeProcess:
    def __init__(self, output: str, returncode: int) -> None:
        self.stdout = io.StringIO(output)
        self.returncode = returncode

    def wait(self, timeout: float | None = None) -> int:
        return self.returncode

    def __enter__(self) -> "_FakeProcess":
        return self

    def __exit__(self, *exc_info: object) -> bool:
        return False


class FakeToolchain:
    """Records commands and answers them according to registered rules."""

    def __init__(self) -> None:
        self.calls: list[Call] = []
        self._rules: list[_Rule] = []
        self.release: str | None = None
        self.revision: str | None = None

    def on(
        self,
        *tokens: str,
        returncode: int = 0,
        stdout: str = "",
        action: Action | None = None,
    ) -> None:
        """Handle commands containing all tokens (later rules win)."""
        self._rules.append(_Rule(tokens, returncode, stdout, action))

    def _dispatch(self, cmd, cwd, env) -> tuple[int, str]:
        args = [str(c) for c in cmd]
        cwd_path = Path(cwd) if cwd is not None else None
        self.calls.append(Call(args, cwd_path, env))
        for rule in reversed(self._rules):
            if all(token in args for token in rule.tokens):
                if rule.action is not None:
                    rule.action(args, cwd_path)
                return rule.returncode, rule.stdout
        return 0, ""

    def popen(self, cmd, cwd=None, env=None, **kwargs):
        returncode, output = self._dispatch(cmd, cwd, env)
        return _FakeProcess(output, returncode)

    def run(self, cmd, cwd=None, env=None, check=False, **kwargs):
        returncode, output = self._dispatch(cmd, cwd, env)
        if check and returncode != 0:
            raise subprocess.CalledProcessError(
                returncode, cmd, output=output, stderr="simulated failure"
            )
        return subprocess.CompletedProcess(cmd, returncode, stdout=output, stderr="")

    @property
    def commands(self) -> list[list[str]]:
        return [c.cmd for c in self.calls]

    def find(self, *tokens: str) -> list[Call]:
        """Recorded calls containing all tokens."""
        return [c for c in self.calls if all(t in c.cmd for t in tokens)]


@pytest.fixture
def toolchain():
    """Patch subprocess in the runner with a FakeToolchain."""
    fake = FakeToolchain()
    with (
        patch(
            "wlanpi_kernel_builder.builds.runner.subprocess.Popen",
            side_effect=fake.popen,
        ),
        patch(
            "wlanpi_kernel_builder.builds.runner.subprocess.run",
            side_effect=fake.run,
        ),
    ):
        yield fake


def _write(path: Path, content: str | bytes = "") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content)


def _make_var(cmd: list[str], name: str) -> str:
    prefix = f"{name}="
    return next(arg[len(prefix) :] for arg in cmd if arg.startswith(prefix))


def install_fake_kernel_build(
    toolchain: FakeToolchain,
    release: str = RELEASE,
    arch: str = "arm64",
) -> None:
    """Register rules that mimic a successful clone, configure and build."""

    def clone(cmd, cwd):
        tree = Path(cmd[-1])
        (tree / ".git").mkdir(parents=True)
        _write(tree / "Makefile", "VERSION = 6\n")
        _write(tree / "Kconfig", "source \"arch/Kconfig\"\n")
        _write(tree / "drivers" / "net" / "Kconfig", "menu \"Net\"\n")

    def defconfig(cmd, cwd):
        _write(cwd / ".config", "CONFIG_BASE=y\n# CONFIG_WLAN is not set\n")

    def merge(cmd, cwd):
        fragment = Path(cmd[-1]).read_bytes()
        config = cwd / ".config"
        config.write_bytes(config.read_bytes() + fragment)

    def image(cmd, cwd):
        _write(cwd / "arch" / arch / "boot" / "Image", b"\x00kernel-image")
        _write(cwd / "System.map", "ffff t _text\n")

    def modules(cmd, cwd):
        _write(cwd / "Module.symvers", "0x0\tsym\tvmlinux\tEXPORT_SYMBOL\n")

    def modules_install(cmd, cwd):
        install_root = Path(_make_var(cmd, "INSTALL_MOD_PATH"))
        root = install_root / "lib" / "modules" / release
        _write(root / "kernel" / "drivers" / "net" / "wifi.ko", b"\x7fELF")
        _write(root / "modules.dep", "kernel/drivers/net/wifi.ko:\n")
        (root / "build").symlink_to(cwd)

    def dtbs(cmd, cwd):
        dts = cwd / "arch" / arch / "boot" / "dts"
        _write(dts / "broadcom" / "bcm2711-rpi-4-b.dtb", b"dtb1")
        _write(dts / "broadcom" / "bcm2711-rpi-cm4.dtb", b"dtb2")
        _write(dts / "overlays" / "disable-bt.dtbo", b"dtbo1")

    def modules_prepare(cmd, cwd):
        _write(cwd / "include" / "linux" / "module.h", "/* module */\n")
        _write(cwd / "scripts" / "mod" / "modpost", b"\x7fELF")
        _write(cwd / "arch" / arch / "include" / "asm" / "io.h", "/* io */\n")
        _write(cwd / "arch" / arch / "Makefile", "KBUILD_DEFCONFIG := defconfig\n")

    def dpkg_deb(cmd, cwd):
        stage = Path(cmd[-2])
        assert (stage / "DEBIAN" / "control").is_file()
        control = (stage / "DEBIAN" / "control").read_bytes()
        _write(Path(cmd[-1]), b"!<arch>\n" + control)

    toolchain.release = release
    toolchain.revision = REVISION
    toolchain.on("git", "clone", action=clone)
    toolchain.on("git", "rev-parse", stdout=f"{REVISION}\n")
    toolchain.on("make", "bcm2711_defconfig", action=defconfig)
    toolchain.on("./scripts/kconfig/merge_config.sh", action=merge)
    toolchain.on("make", "Image", action=image)
    toolchain.on("make", "modules", action=modules)
    toolchain.on("make", "modules_install", action=modules_install)
    toolchain.on("make", "dtbs", action=dtbs)
    toolchain.on("make", "kernelrelease", stdout=f"{release}\n")
    toolchain.on("make", "modules_prepare", action=modules_prepare)
    toolchain.on("dpkg-deb", action=dpkg_deb)


@pytest.fixture
def fake_build(toolchain):
    """A FakeToolchain preloaded with a successful kernel build."""
    install_fake_kernel_build(toolchain)
    return toolchain


@pytest.fixture
def custom_config(tmp_path) -> Path:
    """A WLAN Pi style config fragment."""
    fragment = tmp_path / "wlanpi_v8_defconfig"
    fragment.write_text("CONFIG_WLAN=y\nCONFIG_LOCALVERSION=\"-v8\"\n")
    return fragment


@pytest.fixture
def profile(tmp_path, custom_config) -> BuildProfile:
    """Default profile with inputs inside tmp_path and no patches."""
    return BuildProfile(
        custom_config=custom_config,
        patches_dir=tmp_path / "patches",
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings rooted in tmp_path."""
    return Settings(
        workspace_dir=tmp_path / "work",
        output_dir=tmp_path / "output",
        log_file=tmp_path / "build_kernel.log",
        jobs=4,
    )
