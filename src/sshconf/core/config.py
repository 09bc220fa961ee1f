"""Configuration paths and settings management."""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import yaml

from sshconf.core.environment import OSType
from sshconf.utils.output import warn

INSTALLER_VERSION = "1.0.0"

MANIFEST_NAME = ".dotfiles_manifest"
DISABLED_SUFFIX = ".disabled"
BACKUP_PREFIX = ".backup."


class InstallMethod(str, Enum):
    """How config files are placed in the target tree."""

    COPY = "copy"
    SYMLINK = "symlink"


# config.d fragments that only make sense on some platforms. Fragments not
# listed here are active everywhere.
DEFAULT_PLATFORM_FRAGMENTS: dict[str, frozenset[OSType]] = {
    "01-workstation-mac.conf": frozenset({OSType.MACOS}),
    "01-workstation-linux.conf": frozenset(set(OSType) - {OSType.MACOS}),
}


@dataclass(frozen=True)
class SshPaths:
    """Paths managed under the SSH directory."""

    ssh_dir: Path

    @property
    def config_file(self) -> Path:
        return self.ssh_dir / "config"

    @property
    def config_d_dir(self) -> Path:
        return self.ssh_dir / "config.d"

    @property
    def sockets_dir(self) -> Path:
        return self.ssh_dir / "sockets"

    @property
    def manifest_file(self) -> Path:
        return self.ssh_dir / MANIFEST_NAME

    def contains(self, path: Path) -> bool:
        """Check if a path lies inside the SSH directory (or is it).

        Both sides are normalised first so `..` components cannot escape.
        """
        try:
            Path(os.path.normpath(path)).relative_to(os.path.normpath(self.ssh_dir))
        except ValueError:
            return False
        return True


def default_ssh_dir() -> Path:
    """Get the default SSH directory (~/.ssh)."""
    return Path.home() / ".ssh"


@dataclass
class Settings:
    """User settings, merged from settings.yaml and the environment."""

    method: InstallMethod = InstallMethod.COPY
    source_dir: Path = field(default_factory=Path.cwd)
    ssh_dir: Path = field(default_factory=default_ssh_dir)
    require_ssh: bool = False
    platform_fragments: dict[str, frozenset[OSType]] = field(
        default_factory=lambda: dict(DEFAULT_PLATFORM_FRAGMENTS)
    )

    @property
    def paths(self) -> SshPaths:
        return SshPaths(self.ssh_dir)


def get_config_dir() -> Path:
    """Get sshconf config directory."""
    return Path.home() / ".config" / "sshconf"


def _get_settings_file() -> Path:
    """Get path to settings.yaml."""
    return get_config_dir() / "settings.yaml"


def _parse_platform_fragments(data: object) -> dict[str, frozenset[OSType]]:
    """Parse the platform_fragments mapping, skipping malformed entries."""
    fragments = dict(DEFAULT_PLATFORM_FRAGMENTS)
    if not isinstance(data, dict):
        warn("settings: platform_fragments must be a mapping, ignoring")
        return fragments

    for name, os_names in data.items():
        if isinstance(os_names, str):
            os_names = [os_names]
        if not isinstance(os_names, list):
            warn(f"settings: platform_fragments.{name} must be a list of OS names, ignoring")
            continue
        try:
            fragments[str(name)] = frozenset(OSType(str(o).lower()) for o in os_names)
        except ValueError as e:
            warn(f"settings: platform_fragments.{name}: {e}, ignoring")
    return fragments


def load_settings() -> Settings:
    """Load settings from ~/.config/sshconf/settings.yaml and the environment.

    Environment variables override the file:
    - SSHCONF_SOURCE_DIR: Source repository holding config and config.d/
    - SSHCONF_SSH_DIR: Target SSH directory

    Malformed values are reported and replaced by defaults.
    """
    settings = Settings()
    settings_file = _get_settings_file()

    data: dict = {}
    if settings_file.exists():
        try:
            loaded = yaml.safe_load(settings_file.read_text(encoding="utf-8")) or {}
        except (yaml.YAMLError, UnicodeDecodeError) as e:
            warn(f"Could not parse {settings_file}: {e}")
            loaded = {}
        if isinstance(loaded, dict):
            data = loaded
        else:
            warn(f"Ignoring {settings_file}: expected a mapping")

    if "method" in data:
        try:
            settings.method = InstallMethod(str(data["method"]).lower())
        except ValueError:
            warn(f"settings: invalid method '{data['method']}' (must be 'copy' or 'symlink')")
    if data.get("source_dir"):
        settings.source_dir = Path(str(data["source_dir"]))
    if data.get("ssh_dir"):
        settings.ssh_dir = Path(str(data["ssh_dir"]))
    if "require_ssh" in data:
        settings.require_ssh = bool(data["require_ssh"])
    if "platform_fragments" in data:
        settings.platform_fragments = _parse_platform_fragments(data["platform_fragments"])

    source_env = os.environ.get("SSHCONF_SOURCE_DIR")
    if source_env:
        settings.source_dir = Path(source_env)
    ssh_dir_env = os.environ.get("SSHCONF_SSH_DIR")
    if ssh_dir_env:
        settings.ssh_dir = Path(ssh_dir_env)

    settings.source_dir = settings.source_dir.expanduser().resolve()
    settings.ssh_dir = settings.ssh_dir.expanduser().absolute()
    return settings


def fragment_active(
    filename: str,
    os_type: OSType,
    fragments: dict[str, frozenset[OSType]] | None = None,
) -> bool:
    """Check if a config.d fragment should be active on this OS."""
    table = DEFAULT_PLATFORM_FRAGMENTS if fragments is None else fragments
    allowed = table.get(filename)
    if allowed is None:
        return True
    return os_type in allowed
