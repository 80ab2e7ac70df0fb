"""Build profile management.

This module handles:
- Profile schema validation (Pydantic)
- Loading profiles from YAML/JSON files
- Exporting profiles for inspection
"""

from wlanpi_kernel_builder.profiles.io import (
    default_profile,
    load_profile,
    profile_to_json_string,
    profile_to_yaml_string,
)
from wlanpi_kernel_builder.profiles.schema import (
    BuildProfile,
    InstallLayoutSchema,
    PackageMetadataSchema,
)

__all__ = [
    "BuildProfile",
    "InstallLayoutSchema",
    "PackageMetadataSchema",
    "default_profile",
    "load_profile",
    "profile_to_json_string",
    "profile_to_yaml_string",
]
