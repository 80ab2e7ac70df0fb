"""Tests for install-time scripts.

The rendered scripts are executed with bash against temporary
directories standing in for the device's filesystem.
"""

import shutil
import subprocess

import pytest

from wlanpi_kernel_builder.packaging.templates import (
    HeadersPostinstParams,
    PostinstParams,
    render_headers_postinst,
    render_postinst,
)

needs_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="needs bash")


@pytest.fixture
def device(tmp_path):
    """Payload directory as unpacked by dpkg, plus an empty firmware dir."""
    payload = tmp_path / "payload"
    (payload / "overlays").mkdir(parents=True)
    (payload / "wlanpi-kernel8.img").write_bytes(b"image")
    (payload / "bcm2711-rpi-4-b.dtb").write_bytes(b"dtb")
    (payload / "overlays" / "disable-bt.dtbo").write_bytes(b"dtbo")
    firmware = tmp_path / "boot firmware"
    return payload, firmware


def _render(payload, firmware, **overrides):
    params = PostinstParams(
        firmware_dir=str(firmware),
        payload_dir=str(payload),
        image_name="wlanpi-kernel8.img",
        kernel_version="6.12.1-v8+",
        run_depmod=False,
    )
    for name, value in overrides.items():
        setattr(params, name, value)
    return render_postinst(params)


def _run(script, tmp_path):
    path = tmp_path / "postinst"
    path.write_text(script)
    return subprocess.run(
        ["bash", str(path), "configure"],
        capture_output=True,
        text=True,
        check=True,
    )


class TestRenderPostinst:
    """Tests for the rendered runtime postinst text."""

    def test_values_embedded(self):
        script = render_postinst(
            PostinstParams(
                firmware_dir="/boot/firmware",
                payload_dir="/usr/local/lib/wlanpi-kernel/boot/firmware",
                image_name="wlanpi-kernel8.img",
                kernel_version="6.12.1-v8+",
            )
        )
        assert script.startswith("#!/bin/bash\nset -e\n")
        assert "FIRMWARE_DIR=/boot/firmware\n" in script
        assert "KERNEL_IMAGE=wlanpi-kernel8.img\n" in script
        assert "KERNEL_VERSION=6.12.1-v8+\n" in script
        assert 'depmod "$KERNEL_VERSION"' in script
        assert script.rstrip().endswith("exit 0")

    def test_depmod_optional(self, tmp_path):
        script = _render(tmp_path, tmp_path)
        assert "depmod" not in script

    def test_paths_are_quoted(self, tmp_path):
        script = _render(tmp_path, tmp_path / "with space")
        assert f"FIRMWARE_DIR='{tmp_path / 'with space'}'" in script


@needs_bash
class TestRunPostinst:
    """Tests executing the runtime postinst."""

    def test_installs_files_and_appends_kernel_line(self, device, tmp_path):
        payload, firmware = device
        firmware.mkdir()
        (firmware / "config.txt").write_text("arm_64bit=1")

        _run(_render(payload, firmware), tmp_path)

        assert (firmware / "wlanpi-kernel8.img").read_bytes() == b"image"
        assert (firmware / "bcm2711-rpi-4-b.dtb").is_file()
        assert (firmware / "overlays" / "disable-bt.dtbo").is_file()
        assert (firmware / "config.txt").read_text() == (
            "arm_64bit=1\nkernel=wlanpi-kernel8.img\n"
        )

    def test_replaces_existing_kernel_line(self, device, tmp_path):
        """Exactly one kernel= line remains, pointing at the new image."""
        payload, firmware = device
        firmware.mkdir()
        (firmware / "config.txt").write_text(
            "arm_64bit=1\nkernel=old.img\ndtoverlay=disable-bt\n"
        )

        _run(_render(payload, firmware), tmp_path)

        lines = (firmware / "config.txt").read_text().splitlines()
        assert lines == [
            "arm_64bit=1",
            "kernel=wlanpi-kernel8.img",
            "dtoverlay=disable-bt",
        ]

    def test_creates_missing_directories(self, device, tmp_path):
        payload, firmware = device

        _run(_render(payload, firmware), tmp_path)

        assert (firmware / "overlays" / "disable-bt.dtbo").is_file()
        assert (firmware / "config.txt").read_text() == "kernel=wlanpi-kernel8.img\n"

    def test_idempotent(self, device, tmp_path):
        payload, firmware = device
        script = _render(payload, firmware)

        _run(script, tmp_path)
        _run(script, tmp_path)

        assert (firmware / "config.txt").read_text() == "kernel=wlanpi-kernel8.img\n"


class TestHeadersPostinst:
    """Tests for the headers package postinst."""

    def test_values_embedded(self):
        script = render_headers_postinst(
            HeadersPostinstParams(
                kernel_version="6.12.1-v8+",
                headers_dir="/usr/src/linux-headers-6.12.1-v8+",
            )
        )
        assert "HEADERS_DIR=/usr/src/linux-headers-6.12.1-v8+\n" in script
        assert 'ln -sfn "$HEADERS_DIR" "$MODULES_DIR/build"' in script

    def test_rebuilds_build_helpers(self):
        """Helpers compiled on the build host cannot run on the device."""
        script = render_headers_postinst(
            HeadersPostinstParams(
                kernel_version="6.12.1-v8+",
                headers_dir="/usr/src/linux-headers-6.12.1-v8+",
            )
        )
        assert 'make -C "$HEADERS_DIR" -s scripts\n' in script
        assert 'make -C "$HEADERS_DIR" -s M=scripts/mod\n' in script
        assert script.index("-s scripts") < script.index("ln -sfn")

    def test_helper_build_can_be_skipped(self):
        script = render_headers_postinst(
            HeadersPostinstParams(
                kernel_version="6.12.1-v8+",
                headers_dir="/usr/src/linux-headers-6.12.1-v8+",
                build_scripts=False,
            )
        )
        assert "make -C" not in script

    @needs_bash
    def test_links_build_directory(self, tmp_path):
        headers = tmp_path / "usr" / "src" / "linux-headers-6.12.1-v8+"
        headers.mkdir(parents=True)
        modules_base = tmp_path / "lib" / "modules"
        script = render_headers_postinst(
            HeadersPostinstParams(
                kernel_version="6.12.1-v8+",
                headers_dir=str(headers),
                modules_base=str(modules_base),
                build_scripts=False,
            )
        )

        _run(script, tmp_path)
        _run(script, tmp_path)

        link = modules_base / "6.12.1-v8+" / "build"
        assert link.is_symlink()
        assert link.resolve() == headers.resolve()
