"""Install-time script templates.

Renders the DEBIAN/postinst scripts. All paths and versions are embedded
as literal, shell-quoted values so each script is self-contained. In the
templates `$$` is a literal shell `$`; `${name}` is substituted.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from string import Template

RUNTIME_POSTINST = Template(
    """\
#!/bin/bash
set -e

FIRMWARE_DIR=${firmware_dir}
PACKAGE_KERNEL_DIR=${payload_dir}
CONFIG_TXT="$$FIRMWARE_DIR"/${config_txt}
KERNEL_IMAGE=${image_name}
KERNEL_VERSION=${kernel_version}

echo "Post-installation: Installing kernel image and DTBs to $$FIRMWARE_DIR..."

if [ ! -d "$$FIRMWARE_DIR" ]; then
    echo "Firmware directory $$FIRMWARE_DIR does not exist. Creating it..."
    mkdir -p "$$FIRMWARE_DIR"
fi

if [ ! -d "$$FIRMWARE_DIR/overlays" ]; then
    echo "Overlays directory $$FIRMWARE_DIR/overlays does not exist. Creating it..."
    mkdir -p "$$FIRMWARE_DIR/overlays"
fi

echo "Copying kernel image..."
cp -f "$$PACKAGE_KERNEL_DIR/$$KERNEL_IMAGE" "$$FIRMWARE_DIR/"

echo "Copying DTBs..."
cp -f "$$PACKAGE_KERNEL_DIR/"*.dtb "$$FIRMWARE_DIR/"
cp -f "$$PACKAGE_KERNEL_DIR/overlays/"*.dtbo "$$FIRMWARE_DIR/overlays/"
${depmod_block}
echo "Setting kernel=$$KERNEL_IMAGE in $$CONFIG_TXT..."
if grep -q "^kernel=" "$$CONFIG_TXT" 2>/dev/null; then
    sed -i "s|^kernel=.*|kernel=$$KERNEL_IMAGE|" "$$CONFIG_TXT"
else
    if [ -s "$$CONFIG_TXT" ] && [ -n "$$(tail -c 1 "$$CONFIG_TXT")" ]; then
        echo >> "$$CONFIG_TXT"
    fi
    echo "kernel=$$KERNEL_IMAGE" >> "$$CONFIG_TXT"
fi

echo "Kernel $$KERNEL_VERSION installed successfully."

exit 0
"""
)

DEPMOD_BLOCK = """
echo "Running depmod for kernel version $KERNEL_VERSION..."
depmod "$KERNEL_VERSION"
"""

# Host programs (fixdep, modpost, ...) are shipped as sources only
SCRIPTS_BLOCK = """
echo "Building kernel build helpers in $HEADERS_DIR..."
make -C "$HEADERS_DIR" -s scripts
make -C "$HEADERS_DIR" -s M=scripts/mod
"""

HEADERS_POSTINST = Template(
    """\
#!/bin/bash
set -e

KERNEL_VERSION=${kernel_version}
HEADERS_DIR=${headers_dir}
MODULES_DIR=${modules_base}/"$$KERNEL_VERSION"
${scripts_block}
echo "Linking $$MODULES_DIR/build to $$HEADERS_DIR..."
mkdir -p "$$MODULES_DIR"
ln -sfn "$$HEADERS_DIR" "$$MODULES_DIR/build"

exit 0
"""
)


@dataclass
class PostinstParams:
    """Values embedded into the runtime package postinst.

    Attributes:
        firmware_dir: Boot firmware directory on the device.
        payload_dir: Directory the package ships the image and DTBs in.
        image_name: Kernel image file name.
        kernel_version: Kernel release string.
        config_txt: Boot config file name inside firmware_dir.
        run_depmod: Regenerate module dependencies.
    """

    firmware_dir: str
    payload_dir: str
    image_name: str
    kernel_version: str
    config_txt: str = "config.txt"
    run_depmod: bool = True


@dataclass
class HeadersPostinstParams:
    """Values embedded into the headers package postinst.

    Attributes:
        kernel_version: Kernel release string.
        headers_dir: Installed header tree.
        modules_base: Parent of the per-release module directories.
        build_scripts: Compile the header tree's helper programs.
    """

    kernel_version: str
    headers_dir: str
    modules_base: str = "/lib/modules"
    build_scripts: bool = True


def render_postinst(params: PostinstParams) -> str:
    """Render the runtime package postinst script."""
    return RUNTIME_POSTINST.substitute(
        firmware_dir=shlex.quote(params.firmware_dir),
        payload_dir=shlex.quote(params.payload_dir),
        config_txt=shlex.quote(params.config_txt),
        image_name=shlex.quote(params.image_name),
        kernel_version=shlex.quote(params.kernel_version),
        depmod_block=DEPMOD_BLOCK if params.run_depmod else "",
    )


def render_headers_postinst(params: HeadersPostinstParams) -> str:
    """Render the headers package postinst script."""
    return HEADERS_POSTINST.substitute(
        kernel_version=shlex.quote(params.kernel_version),
        headers_dir=shlex.quote(params.headers_dir),
        modules_base=shlex.quote(params.modules_base),
        scripts_block=SCRIPTS_BLOCK if params.build_scripts else "",
    )


__all__ = [
    "HeadersPostinstParams",
    "PostinstParams",
    "render_headers_postinst",
    "render_postinst",
]
