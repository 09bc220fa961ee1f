"""Installation manifest: what the installer placed, for exact uninstall.

The manifest is a plain text file kept next to the installed config:

    # Dotfiles SSH Configuration Manifest
    # Generated: 2026-01-01 12:00:00 UTC
    # Method: copy
    # Source: /home/me/dotfiles/ssh

    [metadata]
    install_date=1767268800
    install_method=copy
    source_dir=/home/me/dotfiles/ssh
    installer_version=1.0.0

    [files]
    dir:/home/me/.ssh/sockets:
    file:/home/me/.ssh/config:/home/me/dotfiles/ssh/config

Entry lines are split on the first two colons, so only the source may
contain a colon.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from sshconf.core.config import INSTALLER_VERSION, InstallMethod
from sshconf.core.errors import ManifestError
from sshconf.utils.output import info, warn

METADATA_SECTION = "[metadata]"
FILES_SECTION = "[files]"


class EntryKind(str, Enum):
    """Kind of path recorded in the manifest."""

    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"


@dataclass(frozen=True)
class ManifestEntry:
    """A path the installer created."""

    kind: EntryKind
    path: Path
    source: str = ""

    def to_line(self) -> str:
        return f"{self.kind.value}:{self.path}:{self.source}"

    @classmethod
    def from_line(cls, line: str) -> "ManifestEntry":
        """Parse a `kind:path:source` line.

        Raises:
            ValueError: If the kind is unknown or the path is empty.
        """
        kind, _, rest = line.partition(":")
        path, _, source = rest.partition(":")
        if not path:
            raise ValueError(f"missing path in manifest line: {line!r}")
        return cls(kind=EntryKind(kind), path=Path(path), source=source)


@dataclass
class Manifest:
    """Parsed manifest contents."""

    metadata: dict[str, str] = field(default_factory=dict)
    entries: list[ManifestEntry] = field(default_factory=list)

    @property
    def method(self) -> str | None:
        return self.metadata.get("install_method")

    @property
    def source_dir(self) -> str | None:
        return self.metadata.get("source_dir")

    @property
    def install_date(self) -> datetime | None:
        value = self.metadata.get("install_date")
        if not value:
            return None
        try:
            return datetime.fromtimestamp(int(value), tz=timezone.utc)
        except (ValueError, OverflowError):
            return None

    def paths(self) -> list[Path]:
        return [entry.path for entry in self.entries]


def manifest_exists(manifest_file: Path) -> bool:
    """Check if a manifest file is present."""
    return manifest_file.is_file()


def parse_manifest(content: str) -> Manifest:
    """Parse manifest text.

    Comment and blank lines are ignored anywhere. Lines before any section
    header are ignored, as are entry lines with an unknown kind (a warning
    is printed for those).
    """
    manifest = Manifest()
    section = None

    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line in (METADATA_SECTION, FILES_SECTION):
            section = line
            continue

        if section == METADATA_SECTION:
            key, sep, value = line.partition("=")
            if sep:
                manifest.metadata[key.strip()] = value.strip()
        elif section == FILES_SECTION:
            try:
                manifest.entries.append(ManifestEntry.from_line(line))
            except ValueError:
                warn(f"Skipping unrecognized manifest line: {line}")

    return manifest


def read_manifest(manifest_file: Path) -> Manifest | None:
    """Read the manifest, or None if it doesn't exist.

    Raises:
        ManifestError: If the file is not valid UTF-8 text.
    """
    if not manifest_exists(manifest_file):
        return None
    try:
        content = manifest_file.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ManifestError(f"Manifest is not readable text: {manifest_file} ({e})") from e
    return parse_manifest(content)


def read_method(manifest_file: Path) -> str | None:
    """Get the install method recorded in the manifest."""
    manifest = read_manifest(manifest_file)
    if manifest is None:
        return None
    return manifest.method


def remove_manifest(manifest_file: Path) -> None:
    """Delete the manifest if present."""
    manifest_file.unlink(missing_ok=True)


class ManifestWriter:
    """Append-only manifest writer.

    Entries are appended as each path is placed so an interrupted install
    still leaves an accurate record. In dry-run mode nothing is written.
    """

    def __init__(self, manifest_file: Path, *, dry_run: bool = False) -> None:
        self.manifest_file = manifest_file
        self.dry_run = dry_run
        self.entries: list[ManifestEntry] = []

    def init(self, method: InstallMethod, source_dir: Path) -> None:
        """Create a fresh manifest, replacing any previous one."""
        self.entries = []
        if self.dry_run:
            return

        now = time.time()
        generated = datetime.fromtimestamp(now, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        header = (
            "# Dotfiles SSH Configuration Manifest\n"
            f"# Generated: {generated}\n"
            f"# Method: {method.value}\n"
            f"# Source: {source_dir}\n"
            "\n"
            f"{METADATA_SECTION}\n"
            f"install_date={int(now)}\n"
            f"install_method={method.value}\n"
            f"source_dir={source_dir}\n"
            f"installer_version={INSTALLER_VERSION}\n"
            "\n"
            f"{FILES_SECTION}\n"
        )
        self.manifest_file.write_text(header)
        self.manifest_file.chmod(0o600)
        info("Initialized installation manifest")

    def add(self, kind: EntryKind, path: Path, source: Path | str = "") -> None:
        """Record a placed path.

        Raises:
            ManifestError: If the path contains a colon, which the line
                format cannot represent.
        """
        if ":" in str(path):
            raise ManifestError(f"Cannot record path containing ':' in manifest: {path}")
        entry = ManifestEntry(kind=kind, path=path, source=str(source))
        self.entries.append(entry)
        if self.dry_run:
            return
        with self.manifest_file.open("a") as f:
            f.write(entry.to_line() + "\n")

    def recorded(self, path: Path) -> bool:
        """Check if a path was already recorded in this run."""
        return any(entry.path == path for entry in self.entries)
