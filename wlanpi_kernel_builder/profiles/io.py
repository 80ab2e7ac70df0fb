"""Build profile loading and export.

Profiles are YAML or JSON mappings validated by BuildProfile. Relative
paths inside a profile file are resolved against the file's directory.
"""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from wlanpi_kernel_builder.profiles.schema import BuildProfile


_PARSERS: dict[str, Callable[[str], Any]] = {
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": json.loads,
}


def read_profile_data(path: Path) -> dict[str, Any]:
    """Parse a profile file into a mapping without validating it.

    An empty YAML document yields an empty mapping, so every field takes
    its default.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not a parseable profile mapping.
    """
    parser = _PARSERS.get(path.suffix.lower())
    if parser is None:
        raise ValueError(
            f"Unsupported profile format: {path.suffix}. Use .yaml, .yml, or .json"
        )
    text = path.read_text(encoding="utf-8")
    try:
        data = parser(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"{path.name}: cannot parse profile: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"{path.name}: profile must be a mapping, got {type(data).__name__}"
        )
    return data


def load_profile(path: Path) -> BuildProfile:
    """Load and validate a build profile.

    Returns:
        Validated BuildProfile with paths resolved against the file's
        directory.

    Raises:
        pydantic.ValidationError: If data does not match schema.
    """
    profile = BuildProfile.model_validate(read_profile_data(path))
    return profile.resolve_paths(path.parent.resolve())


def default_profile(base_dir: Path | None = None) -> BuildProfile:
    """Return the built-in profile with paths resolved against base_dir.

    Args:
        base_dir: Directory for relative paths; defaults to the cwd.
    """
    if base_dir is None:
        base_dir = Path.cwd()
    return BuildProfile().resolve_paths(base_dir)


def profile_to_dict(profile: BuildProfile) -> dict[str, Any]:
    """Convert a profile to a plain dict suitable for YAML/JSON."""
    return profile.model_dump(mode="json")


def profile_to_yaml_string(profile: BuildProfile) -> str:
    """Serialize a profile to a YAML string."""
    return yaml.safe_dump(
        profile_to_dict(profile),
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


def profile_to_json_string(profile: BuildProfile, indent: int = 2) -> str:
    """Serialize a profile to a JSON string."""
    return json.dumps(profile_to_dict(profile), indent=indent, ensure_ascii=False)


__all__ = [
    "default_profile",
    "load_profile",
    "profile_to_dict",
    "profile_to_json_string",
    "profile_to_yaml_string",
    "read_profile_data",
]
