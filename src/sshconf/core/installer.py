"""Install the SSH configuration tree by copy or symlink."""

import os
import shutil
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from sshconf.core.backup import backup_existing_config, make_backup_suffix
from sshconf.core.config import DISABLED_SUFFIX, InstallMethod, SshPaths, fragment_active
from sshconf.core.environment import OSType, detect_arch, detect_os_type, is_root
from sshconf.core.errors import (
    EnvironmentValidationError,
    InstallCancelled,
    SourceValidationError,
    ManifestError,
    SshconfError,
    VerificationError,
)
from sshconf.core.manifest import EntryKind, Manifest, ManifestWriter, read_manifest
from sshconf.utils.output import confirm, error, info, ok, step, warn
from sshconf.utils.ssh import check_config_syntax, ssh_available

DIR_MODE = 0o700
FILE_MODE = 0o600


@dataclass
class InstallOptions:
    """Flags controlling an install run."""

    method: InstallMethod = InstallMethod.COPY
    dry_run: bool = False
    force: bool = False
    require_ssh: bool = False
    platform_fragments: dict[str, frozenset[OSType]] | None = None


@dataclass(frozen=True)
class Placement:
    """A source file and where it lands in the target tree."""

    source: Path
    target: Path
    disabled: bool = False


@dataclass
class InstallReport:
    """What an install run did."""

    os_type: OSType = OSType.UNKNOWN
    placements: list[Placement] = field(default_factory=list)
    created_dirs: list[Path] = field(default_factory=list)
    backups: list[Path] = field(default_factory=list)


def find_fragments(source_dir: Path) -> list[Path]:
    """List config.d/*.conf files in the source (top level only), sorted."""
    config_d = source_dir / "config.d"
    if not config_d.is_dir():
        return []
    return sorted(p for p in config_d.glob("*.conf") if p.is_file())


def validate_source(source_dir: Path) -> list[Path]:
    """Check the source repository and return its fragments.

    Raises:
        SourceValidationError: If config, config.d or any *.conf is missing.
    """
    step("Validating source files...")

    config_file = source_dir / "config"
    if not config_file.is_file():
        raise SourceValidationError(f"Source config file not found: {config_file}")

    config_d = source_dir / "config.d"
    if not config_d.is_dir():
        raise SourceValidationError(f"Source config.d directory not found: {config_d}")

    fragments = find_fragments(source_dir)
    if not fragments:
        raise SourceValidationError(f"No .conf files found in {config_d}")

    ok(f"Found {len(fragments)} configuration file(s)")
    return fragments


def plan_placements(
    source_dir: Path,
    paths: SshPaths,
    os_type: OSType,
    fragments: list[Path],
    platform_fragments: dict[str, frozenset[OSType]] | None = None,
) -> list[Placement]:
    """Compute where each source file goes.

    Fragments that are inactive on this OS are placed with a `.disabled`
    suffix so ssh's `Include config.d/*.conf` skips them.

    Raises:
        ManifestError: If a target path contains a colon.
    """
    placements = [Placement(source=source_dir / "config", target=paths.config_file)]
    for fragment in fragments:
        name = fragment.name
        if fragment_active(name, os_type, platform_fragments):
            placements.append(Placement(source=fragment, target=paths.config_d_dir / name))
        else:
            placements.append(
                Placement(
                    source=fragment,
                    target=paths.config_d_dir / f"{name}{DISABLED_SUFFIX}",
                    disabled=True,
                )
            )

    for placement in placements:
        if ":" in str(placement.target):
            raise ManifestError(
                f"Cannot record path containing ':' in manifest: {placement.target}"
            )
    return placements


def _chmod(path: Path, mode: int) -> None:
    """chmod a path; for symlinks the target is changed and failures only warn."""
    if path.is_symlink():
        try:
            os.chmod(path, mode)
        except OSError as e:
            warn(f"Could not set permissions on symlink target of {path}: {e}")
        return
    path.chmod(mode)


class Installer:
    """Installs config and config.d fragments into an SSH directory.

    Steps run in order: validate environment, validate source, plan,
    back up, create directories, write manifest, place files, set
    permissions and verify. In dry-run mode every step only reports.
    """

    def __init__(
        self,
        source_dir: Path,
        paths: SshPaths,
        options: InstallOptions | None = None,
        confirm_fn: Callable[[str, bool], bool] = confirm,
    ) -> None:
        self.source_dir = source_dir
        self.paths = paths
        self.options = options or InstallOptions()
        self.confirm_fn = confirm_fn
        self.backup_suffix = make_backup_suffix()
        self.manifest = ManifestWriter(paths.manifest_file, dry_run=self.options.dry_run)
        self.report = InstallReport()

    @property
    def method(self) -> InstallMethod:
        return self.options.method

    @property
    def dry_run(self) -> bool:
        return self.options.dry_run

    def ask(self, prompt: str, default: bool = False) -> bool:
        """Ask for confirmation; --force answers yes."""
        if self.options.force:
            return True
        return self.confirm_fn(prompt, default)

    def run(self) -> InstallReport:
        """Run the full install.

        Raises:
            SshconfError: On validation failure, cancellation or failed
                verification.
        """
        self.report.os_type = self.validate_environment()
        fragments = validate_source(self.source_dir)
        self.report.placements = plan_placements(
            self.source_dir,
            self.paths,
            self.report.os_type,
            fragments,
            self.options.platform_fragments,
        )

        try:
            previous = read_manifest(self.paths.manifest_file)
        except ManifestError as e:
            warn(f"Ignoring previous manifest: {e}")
            previous = None
        self.backup_existing()
        created = self.create_directories()
        self.init_manifest(created)
        self.install_config_files()
        if previous is not None:
            self.carry_forward(previous)
        self.set_permissions()

        if not self.dry_run:
            self.verify()
        return self.report

    def validate_environment(self) -> OSType:
        """Check privileges and required commands, detect the OS."""
        step("Validating environment...")

        if is_root():
            warn("Running as root is not recommended for SSH config")
            if not self.ask("Continue anyway?"):
                raise InstallCancelled("Installation cancelled")

        if self.options.require_ssh and not ssh_available():
            raise EnvironmentValidationError("Missing required commands: ssh")

        os_type = detect_os_type()
        info(f"Detected OS: {os_type.value} ({detect_arch()})")
        info(f"Installation method: {self.method.value}")
        return os_type

    def backup_existing(self) -> None:
        """Back up config/config.d if present, asking first unless forced."""
        ask = None if self.options.force else (lambda prompt: self.confirm_fn(prompt, False))
        result = backup_existing_config(
            self.paths, self.backup_suffix, dry_run=self.dry_run, ask=ask
        )
        if result is not None:
            self.report.backups.extend(result.created)

    def create_directories(self) -> list[Path]:
        """Create ~/.ssh, sockets and config.d; return the ones created."""
        step("Creating directory structure...")

        wanted = [self.paths.ssh_dir, self.paths.sockets_dir, self.paths.config_d_dir]

        if self.dry_run:
            for directory in wanted:
                if not directory.is_dir():
                    info(f"[DRY-RUN] Would create: {directory}")
            return []

        created = []
        for directory in wanted:
            if directory.is_symlink() and not directory.is_dir():
                raise SshconfError(f"Broken symlink in place of directory: {directory}")
            if not directory.is_dir():
                directory.mkdir(mode=DIR_MODE, parents=True)
                created.append(directory)

        self.report.created_dirs = created
        ok("Created directory structure")
        return created

    def init_manifest(self, created_dirs: list[Path]) -> None:
        """Start a fresh manifest and record directories created by this run."""
        self.manifest.init(self.method, self.source_dir)
        for directory in created_dirs:
            self.manifest.add(EntryKind.DIR, directory)

    def install_file(self, source: Path, target: Path) -> None:
        """Replace target with a copy of, or symlink to, source."""
        if target.is_symlink() or target.is_file():
            target.unlink()
        elif target.exists():
            raise SshconfError(f"Refusing to replace non-file path: {target}")

        if self.method == InstallMethod.SYMLINK:
            target.symlink_to(source)
            self.manifest.add(EntryKind.SYMLINK, target, source)
        else:
            shutil.copyfile(source, target)
            self.manifest.add(EntryKind.FILE, target, source)

    def install_config_files(self) -> None:
        """Place the main config and every fragment."""
        step(f"Installing configuration files (method: {self.method.value})...")

        placements = self.report.placements
        if self.dry_run:
            for placement in placements:
                info(
                    f"[DRY-RUN] Would {self.method.value} {placement.source} -> {placement.target}"
                )
            return

        main, fragments = placements[0], placements[1:]
        self.install_file(main.source, main.target)
        ok(f"Installed main config: {main.target}")

        os_name = self.report.os_type.value
        for placement in fragments:
            if placement.disabled:
                info(f"Installing {placement.source.name} as disabled ({os_name} system)")
            self.install_file(placement.source, placement.target)

        ok(f"Installed {len(fragments)} configuration file(s)")

    def carry_forward(self, previous: Manifest) -> None:
        """Keep ownership of paths a previous install created.

        Entries from the previous manifest that still exist and were not
        re-placed by this run are recorded again so uninstall removes them.
        """
        for entry in previous.entries:
            if self.manifest.recorded(entry.path):
                continue
            if not self.paths.contains(entry.path):
                continue
            if entry.path.exists() or entry.path.is_symlink():
                self.manifest.add(entry.kind, entry.path, entry.source)

    def set_permissions(self) -> None:
        """Apply 700 to directories and 600 to files."""
        step("Setting secure permissions...")

        if self.dry_run:
            info("[DRY-RUN] Would set permissions")
            return

        paths = self.paths
        paths.ssh_dir.chmod(DIR_MODE)

        if paths.config_file.exists() or paths.config_file.is_symlink():
            _chmod(paths.config_file, FILE_MODE)

        config_d = paths.config_d_dir
        if config_d.is_dir() and not config_d.is_symlink():
            config_d.chmod(DIR_MODE)
            for member in sorted(config_d.iterdir()):
                if member.is_symlink() or member.is_file():
                    _chmod(member, FILE_MODE)

        if paths.sockets_dir.is_dir():
            paths.sockets_dir.chmod(DIR_MODE)

        if paths.manifest_file.is_file():
            paths.manifest_file.chmod(FILE_MODE)

        ok("Set secure permissions (700 for dirs, 600 for files)")

    def verify(self) -> None:
        """Check the installed tree.

        Raises:
            VerificationError: If anything required is missing or ssh
                rejects the config.
        """
        step("Verifying installation...")

        paths = self.paths
        errors: list[str] = []

        def fail(msg: str) -> None:
            error(msg)
            errors.append(msg)

        for directory in (paths.ssh_dir, paths.sockets_dir):
            if not directory.is_dir():
                fail(f"Directory missing: {directory}")

        if not paths.config_file.exists() and not paths.config_file.is_symlink():
            fail(f"Config file missing: {paths.config_file}")

        if not paths.config_d_dir.is_dir():
            fail(f"Config.d directory missing: {paths.config_d_dir}")

        if self.method == InstallMethod.SYMLINK:
            broken = [
                p.target
                for p in self.report.placements
                if p.target.is_symlink() and not p.target.exists()
            ]
            for target in broken:
                fail(f"Broken symlink: {target}")
            if paths.config_file.is_symlink() and paths.config_file not in broken:
                ok("Config symlink is valid")

        if not paths.manifest_file.is_file():
            warn("Manifest file not created (non-critical)")

        if paths.ssh_dir.is_dir():
            mode = stat.S_IMODE(paths.ssh_dir.stat().st_mode)
            if mode != DIR_MODE:
                warn(f"SSH directory permissions are {mode:o}, should be 700")

        if ssh_available():
            valid, output = check_config_syntax(paths.config_file)
            if valid:
                ok("SSH config syntax is valid")
            else:
                fail("SSH config syntax validation failed")
                if output:
                    error(output)
                error(f"Run: ssh -F {paths.config_file} -G localhost  # for details")
        else:
            info("ssh not found, skipping config syntax validation")

        if errors:
            raise VerificationError(errors)
        ok("Installation verified successfully")
