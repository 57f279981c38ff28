"""
Configuration surface.

PackageConfig describes the package being installed (loaded from
native-prebuild.yaml). RunOptions carries per-invocation switches from the
environment and command line. Both are validated before any network
activity; problems raise ConfigurationError.
"""

from __future__ import annotations

import os
import re
import shlex
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from nativeprebuild.errors import ConfigurationError

DEFAULT_CONFIG_FILE = "native-prebuild.yaml"
DEFAULT_API_HOST = "https://api.github.com"

ENV_BUILD_FROM_SOURCE = "NATIVE_PREBUILD_BUILD_FROM_SOURCE"
ENV_FALLBACK_TO_BUILD = "NATIVE_PREBUILD_FALLBACK_TO_BUILD"
ENV_QUIET = "NATIVE_PREBUILD_QUIET"
ENV_ARCH = "NATIVE_PREBUILD_ARCH"
ENV_LIBC = "NATIVE_PREBUILD_LIBC"
ENV_PLATFORM = "NATIVE_PREBUILD_PLATFORM"
ENV_PIP = "NATIVE_PREBUILD_PIP"

_REPOSITORY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class PackageConfig(BaseModel):
    """Package settings (frozen).

    Relative paths are resolved against the directory of the config file
    by load_config().
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Package name")
    version: str = Field(..., min_length=1, description="Package version, release tag is v{version}")
    repository: str = Field(..., description="GitHub repository as owner/repo")
    destination: Path = Field(..., description="Where the extension module is installed")
    build: str = Field(..., min_length=1, description="Build command")
    prebuild: str | None = Field(default=None, description="Optional pre-build command")
    build_dependencies: dict[str, str] = Field(
        default_factory=dict,
        description="Build-time dependencies, name -> version specifier",
    )
    disable_minbuild: bool = Field(default=False, description="Skip the minbuild fast path")
    uses_native_api: bool = Field(default=False, description="Binaries target the stable ABI")
    api_host: str = Field(default=DEFAULT_API_HOST, description="Release metadata API host")
    source_dir: Path = Field(default=Path("."), description="Build cwd and minbuild target")

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, v: str) -> str:
        """Require owner/repo."""
        if not _REPOSITORY_PATTERN.match(v):
            msg = f"repository must be owner/repo, got {v!r}"
            raise ValueError(msg)
        return v

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Strip a leading v, the tag prefix is added when needed."""
        v = v.strip()
        return v[1:] if v.startswith("v") else v

    @field_validator("api_host")
    @classmethod
    def validate_api_host(cls, v: str) -> str:
        """Require an http(s) host, no trailing slash."""
        if not v.startswith(("http://", "https://")):
            msg = f"api_host must be an http(s) URL, got {v!r}"
            raise ValueError(msg)
        return v.rstrip("/")

    @property
    def owner(self) -> str:
        """Repository owner."""
        return self.repository.split("/", 1)[0]

    @property
    def repo(self) -> str:
        """Repository name."""
        return self.repository.split("/", 1)[1]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, base_dir: Path | None = None) -> PackageConfig:
        """Validate a mapping into a PackageConfig.

        Args:
            data: Parsed configuration fields.
            base_dir: Directory against which relative paths resolve.

        Raises:
            ConfigurationError: If fields are missing or invalid.
        """
        try:
            config = cls.model_validate(dict(data))
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            )
            msg = f"Invalid configuration: {problems}"
            raise ConfigurationError(msg) from e

        if base_dir is not None:
            config = config.model_copy(
                update={
                    "destination": _resolve(base_dir, config.destination),
                    "source_dir": _resolve(base_dir, config.source_dir),
                }
            )
        return config


def _resolve(base_dir: Path, path: Path) -> Path:
    return path if path.is_absolute() else (base_dir / path)


def load_config(path: Path) -> PackageConfig:
    """Load PackageConfig from a YAML (or JSON) file.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid.
    """
    path = Path(path)
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        msg = f"Configuration file not found: {path}"
        raise ConfigurationError(msg) from e
    except (OSError, yaml.YAMLError) as e:
        msg = f"Cannot read configuration {path}: {e}"
        raise ConfigurationError(msg) from e

    if not isinstance(data, dict):
        msg = f"Configuration {path} must be a mapping, got {type(data).__name__}"
        raise ConfigurationError(msg)

    return PackageConfig.from_mapping(data, base_dir=path.resolve().parent)


def _parse_package_switch(value: str | None, package: str) -> bool | None:
    """Interpret a boolean-or-package-list environment value.

    "1"/"true" -> True, "0"/"false" -> False, "a,b" -> package in list,
    unset/empty -> None.
    """
    if value is None or not value.strip():
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    names = {n.strip() for n in value.split(",") if n.strip()}
    return package in names


@dataclass
class RunOptions:
    """Per-run switches.

    Attributes:
        build_only: Skip binary resolution and build from source.
        fallback_to_build: Build from source when no binary can be installed.
        quiet_build: Suppress build command output.
        arch: Architecture override.
        libc: libc override, name[_major.minor[.patch]].
        platform: Platform override, name[_major.minor].
        package_manager: Command prefix used to install build dependencies.
    """

    build_only: bool = False
    fallback_to_build: bool = True
    quiet_build: bool = False
    arch: str | None = None
    libc: str | None = None
    platform: str | None = None
    package_manager: list[str] | None = field(default=None)

    def __post_init__(self) -> None:
        if self.package_manager is not None and not self.package_manager:
            raise ConfigurationError("package_manager must not be an empty command")

    @classmethod
    def from_env(cls, package: str, environ: Mapping[str, str] | None = None) -> RunOptions:
        """Build options from environment variables.

        The build-from-source and fallback variables accept either a boolean
        or a comma-separated list of package names they apply to.
        """
        env = os.environ if environ is None else environ

        build_only = _parse_package_switch(env.get(ENV_BUILD_FROM_SOURCE), package)
        fallback = _parse_package_switch(env.get(ENV_FALLBACK_TO_BUILD), package)
        quiet = _parse_package_switch(env.get(ENV_QUIET), package)

        pip = env.get(ENV_PIP, "").strip()
        if pip:
            package_manager: list[str] | None = shlex.split(pip)
        elif sys.executable:
            package_manager = [sys.executable, "-m", "pip"]
        else:
            package_manager = None

        return cls(
            build_only=bool(build_only),
            fallback_to_build=True if fallback is None else fallback,
            quiet_build=bool(quiet),
            arch=env.get(ENV_ARCH) or None,
            libc=env.get(ENV_LIBC) or None,
            platform=env.get(ENV_PLATFORM) or None,
            package_manager=package_manager,
        )
