"""WLAN Pi kernel builder - build and package a Raspberry Pi kernel.

This package sequences git, make, patch and dpkg-deb to turn an upstream
kernel branch into installable Debian packages.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
