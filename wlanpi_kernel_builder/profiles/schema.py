"""Pydantic models for build profile validation.

A build profile describes one kernel flavour: where its source lives,
how it is configured, and how its Debian packages are laid out. Profiles
are loaded from YAML/JSON files; the defaults reproduce the WLAN Pi
bookworm kernel for Raspberry Pi CM4/RPI4.
"""

import re
from pathlib import Path, PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Debian policy 5.6.1: lowercase letters, digits, '+', '-', '.'
PACKAGE_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9+.\-]+$")

# Embedded unescaped in the postinst sed expression and config.txt
IMAGE_NAME_PATTERN = re.compile(r"[A-Za-z0-9_+\-][A-Za-z0-9._+\-]*")


class PackageMetadataSchema(BaseModel):
    """Metadata written into the runtime package's DEBIAN/control.

    Attributes:
        name: Debian package name of the runtime package.
        architecture: Debian architecture (e.g., 'arm64').
        maintainer: Maintainer field.
        section: Archive section.
        priority: Package priority.
        depends: Runtime dependencies.
        conflicts: Packages this one conflicts with.
        replaces: Packages this one replaces.
        description: One-line synopsis.
        long_description: Extended description, one entry per line.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(default="wlanpi-kernel-bookworm")
    architecture: str = Field(default="arm64")
    maintainer: str = Field(default="Jerry Olla <jerryolla@gmail.com>")
    section: str = Field(default="kernel")
    priority: str = Field(default="optional")
    depends: list[str] = Field(default_factory=lambda: ["libc6 (>= 2.29)", "kmod"])
    conflicts: list[str] = Field(default_factory=lambda: ["wlanpi-kernel"])
    replaces: list[str] = Field(default_factory=lambda: ["wlanpi-kernel"])
    description: str = Field(
        default=(
            "Custom Linux kernel for Raspberry Pi CM4/RPI4 with WLAN Pi v8 "
            "configuration for Debian Bookworm"
        )
    )
    long_description: list[str] = Field(
        default_factory=lambda: [
            "This package contains a custom-built Linux kernel image, Device "
            "Tree Blobs (DTBs),",
            "and kernel modules tailored for the WLAN Pi v8 configuration on "
            "Raspberry Pi CM4/RPI4 running Debian Bookworm.",
        ]
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name follows Debian package naming rules."""
        if not PACKAGE_NAME_PATTERN.match(v):
            raise ValueError(
                f"name must be a valid Debian package name, got '{v}'"
            )
        return v

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        """Validate the synopsis fits on one line."""
        if not v.strip() or "\n" in v:
            raise ValueError("description must be a single non-empty line")
        return v

    @property
    def headers_name(self) -> str:
        """Package name of the companion headers package."""
        return f"{self.name}-headers"


class InstallLayoutSchema(BaseModel):
    """Target filesystem layout used by the packages and postinst scripts.

    Attributes:
        firmware_dir: Boot firmware partition on the device.
        payload_dir: Where the package ships the image and DTBs before
            postinst copies them into firmware_dir.
        config_txt: Boot config file name inside firmware_dir.
        run_depmod: Regenerate module dependencies after install.
    """

    model_config = ConfigDict(extra="forbid")

    firmware_dir: str = Field(default="/boot/firmware")
    payload_dir: str = Field(default="/usr/local/lib/wlanpi-kernel/boot/firmware")
    config_txt: str = Field(default="config.txt")
    run_depmod: bool = Field(default=True)

    @field_validator("firmware_dir", "payload_dir")
    @classmethod
    def validate_absolute(cls, v: str) -> str:
        """Validate install paths are absolute."""
        if not PurePosixPath(v).is_absolute():
            raise ValueError(f"path must be absolute, got '{v}'")
        return v.rstrip("/") or "/"

    @field_validator("config_txt")
    @classmethod
    def validate_config_txt(cls, v: str) -> str:
        """Validate config_txt is a bare file name."""
        if not v or "/" in v:
            raise ValueError(f"config_txt must be a file name, got '{v}'")
        return v


class BuildProfile(BaseModel):
    """Complete build profile.

    Attributes:
        name: Profile identifier (used in logs).
        repo_url: Upstream kernel git repository.
        branch: Branch or tag to build.
        arch: Kernel ARCH value.
        cross_compile: CROSS_COMPILE toolchain prefix.
        base_config: Base defconfig target.
        custom_config: Override fragment merged onto the base config.
        patches_dir: Directory of *.patch files (optional).
        image_target: make target producing the primary image.
        image_name: File name of the installed kernel image.
        clean_before_build: Run `make mrproper` before configuring.
        headers: Also export headers and build the headers package.
        package: Runtime package metadata.
        layout: Install layout for packages and postinst scripts.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(default="wlanpi-bookworm")
    repo_url: str = Field(default="https://github.com/raspberrypi/linux.git")
    branch: str = Field(default="rpi-6.12.y")
    arch: str = Field(default="arm64")
    cross_compile: str = Field(default="aarch64-linux-gnu-")
    base_config: str = Field(default="bcm2711_defconfig")
    custom_config: Path = Field(default=Path("wlanpi_v8_defconfig"))
    patches_dir: Path | None = Field(default=Path("patches"))
    image_target: str = Field(default="Image")
    image_name: str = Field(default="wlanpi-kernel8.img")
    clean_before_build: bool = Field(default=False)
    headers: bool = Field(default=False)
    package: PackageMetadataSchema = Field(default_factory=PackageMetadataSchema)
    layout: InstallLayoutSchema = Field(default_factory=InstallLayoutSchema)

    @field_validator("repo_url", "branch", "arch", "base_config", "image_target")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Validate required string fields are not blank."""
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("image_name")
    @classmethod
    def validate_image_name(cls, v: str) -> str:
        """Validate image_name is a plain file name.

        Only letters, digits and `._+-` are allowed, with no leading dot.
        """
        if not IMAGE_NAME_PATTERN.fullmatch(v):
            raise ValueError(f"image_name must be a file name, got '{v}'")
        return v

    def resolve_paths(self, base_dir: Path) -> "BuildProfile":
        """Return a copy with relative input paths anchored at base_dir.

        Args:
            base_dir: Directory that relative paths are relative to.

        Returns:
            New BuildProfile with absolute custom_config and patches_dir.
        """
        update: dict[str, Path | None] = {}
        if not self.custom_config.is_absolute():
            update["custom_config"] = (base_dir / self.custom_config).resolve()
        if self.patches_dir is not None and not self.patches_dir.is_absolute():
            update["patches_dir"] = (base_dir / self.patches_dir).resolve()
        return self.model_copy(update=update)


__all__ = [
    "PACKAGE_NAME_PATTERN",
    "BuildProfile",
    "InstallLayoutSchema",
    "PackageMetadataSchema",
]
