"""Package version identifiers.

The package version is `<release>-<stamp>`, where release comes from
`make kernelrelease` and stamp is the build date (YYYYMMDD) or a full
timestamp (YYYYMMDD.HHMMSS).
"""

from datetime import datetime

from wlanpi_kernel_builder.types import VersionStamp

STAMP_FORMATS = {
    VersionStamp.DATE: "%Y%m%d",
    VersionStamp.TIMESTAMP: "%Y%m%d.%H%M%S",
}


def format_build_stamp(
    when: datetime | None = None,
    mode: VersionStamp = VersionStamp.DATE,
) -> str:
    """Format the date component of a package version.

    Args:
        when: Build time; defaults to now (local time).
        mode: Date-only or full timestamp.

    Returns:
        Stamp string, e.g. '20250101' or '20250101.120000'.
    """
    if when is None:
        when = datetime.now()
    return when.strftime(STAMP_FORMATS[VersionStamp(mode)])


def compute_version_identifier(release: str, stamp: str) -> str:
    """Join release string and stamp into the package version.

    Raises:
        ValueError: If either part is empty or the release contains
            whitespace.
    """
    release = release.strip()
    stamp = stamp.strip()
    if not release:
        raise ValueError("release string must not be empty")
    if not stamp:
        raise ValueError("build stamp must not be empty")
    if any(c.isspace() for c in release):
        raise ValueError(f"release string contains whitespace: {release!r}")
    return f"{release}-{stamp}"


def deb_filename(package: str, version: str, architecture: str) -> str:
    """Standard Debian archive name: <package>_<version>_<arch>.deb."""
    return f"{package}_{version}_{architecture}.deb"


__all__ = [
    "STAMP_FORMATS",
    "compute_version_identifier",
    "deb_filename",
    "format_build_stamp",
]
