"""Debian packaging.

This module handles:
- Package version identifiers
- DEBIAN/control and postinst rendering
- Staging and dpkg-deb invocation
"""

from wlanpi_kernel_builder.packaging.version import (
    compute_version_identifier,
    deb_filename,
    format_build_stamp,
)

__all__ = ["compute_version_identifier", "deb_filename", "format_build_stamp"]
