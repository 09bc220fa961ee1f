"""Tests for install planning and the install run."""

import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from sshconf.core.config import InstallMethod, SshPaths
from sshconf.core.environment import OSType
from sshconf.core.errors import (
    EnvironmentValidationError,
    InstallCancelled,
    ManifestError,
    SourceValidationError,
    VerificationError,
)
from sshconf.core.installer import (
    InstallOptions,
    Installer,
    find_fragments,
    plan_placements,
    validate_source,
)
from sshconf.core.manifest import EntryKind, read_manifest


def mode(path: Path) -> int:
    return stat.S_IMODE(path.stat().st_mode)


def make_installer(source: Path, paths: SshPaths, confirm=None, **options) -> Installer:
    """Build an installer that fails the test if it prompts unexpectedly."""

    def no_prompt(prompt: str, default: bool) -> bool:
        raise AssertionError(f"unexpected prompt: {prompt}")

    return Installer(source, paths, InstallOptions(**options), confirm_fn=confirm or no_prompt)


class TestValidateSource:
    """Tests for source repository validation."""

    def test_finds_conf_files_only(self, source_repo: Path):
        fragments = validate_source(source_repo)

        assert [f.name for f in fragments] == [
            "00-defaults.conf",
            "01-workstation-linux.conf",
            "01-workstation-mac.conf",
            "99-example.conf",
        ]

    def test_ignores_nested_conf(self, source_repo: Path):
        nested = source_repo / "config.d" / "extra"
        nested.mkdir()
        (nested / "nested.conf").write_text("Host nested\n")

        assert "nested.conf" not in [f.name for f in find_fragments(source_repo)]

    def test_missing_config(self, source_repo: Path):
        (source_repo / "config").unlink()
        with pytest.raises(SourceValidationError, match="Source config file not found"):
            validate_source(source_repo)

    def test_missing_config_d(self, tmp_path: Path):
        repo = tmp_path / "repo"
        repo.mkdir()
        (repo / "config").write_text("")
        with pytest.raises(SourceValidationError, match="config.d directory not found"):
            validate_source(repo)

    def test_no_conf_files(self, source_repo: Path):
        for conf in (source_repo / "config.d").glob("*.conf"):
            conf.unlink()
        with pytest.raises(SourceValidationError, match="No .conf files"):
            validate_source(source_repo)


class TestPlanPlacements:
    """Tests for computing target paths."""

    def test_linux_disables_mac_fragment(self, source_repo: Path, ssh_paths: SshPaths):
        placements = plan_placements(
            source_repo, ssh_paths, OSType.LINUX, find_fragments(source_repo)
        )
        targets = {p.target.name: p.disabled for p in placements}

        assert targets["config"] is False
        assert targets["01-workstation-linux.conf"] is False
        assert targets["01-workstation-mac.conf.disabled"] is True
        assert "01-workstation-mac.conf" not in targets

    def test_macos_disables_linux_fragment(self, source_repo: Path, ssh_paths: SshPaths):
        placements = plan_placements(
            source_repo, ssh_paths, OSType.MACOS, find_fragments(source_repo)
        )
        targets = {p.target.name for p in placements}

        assert "01-workstation-mac.conf" in targets
        assert "01-workstation-linux.conf.disabled" in targets

    def test_rejects_target_with_colon(self, source_repo: Path, tmp_path: Path):
        paths = SshPaths(tmp_path / "odd:home" / ".ssh")
        fragments = find_fragments(source_repo)

        with pytest.raises(ManifestError, match="containing ':'"):
            plan_placements(source_repo, paths, OSType.LINUX, fragments)

    def test_colon_ssh_dir_changes_nothing(self, source_repo: Path, tmp_path: Path):
        paths = SshPaths(tmp_path / "odd:home" / ".ssh")

        with pytest.raises(ManifestError):
            make_installer(source_repo, paths, force=True).run()

        assert not paths.ssh_dir.exists()

    def test_main_config_first(self, source_repo: Path, ssh_paths: SshPaths):
        placements = plan_placements(
            source_repo, ssh_paths, OSType.LINUX, find_fragments(source_repo)
        )
        assert placements[0].source == source_repo / "config"
        assert placements[0].target == ssh_paths.config_file


class TestCopyInstall:
    """Tests for copy-mode installs."""

    def test_installs_regular_files(self, source_repo: Path, ssh_paths: SshPaths):
        make_installer(source_repo, ssh_paths).run()

        assert ssh_paths.config_file.read_text() == (source_repo / "config").read_text()
        members = sorted(ssh_paths.config_d_dir.iterdir())
        assert [m.name for m in members] == [
            "00-defaults.conf",
            "01-workstation-linux.conf",
            "01-workstation-mac.conf.disabled",
            "99-example.conf",
        ]
        assert not any(m.is_symlink() for m in members)
        assert not ssh_paths.config_file.is_symlink()
        assert ssh_paths.sockets_dir.is_dir()

    def test_sets_permissions(self, source_repo: Path, ssh_paths: SshPaths):
        make_installer(source_repo, ssh_paths).run()

        assert mode(ssh_paths.ssh_dir) == 0o700
        assert mode(ssh_paths.config_d_dir) == 0o700
        assert mode(ssh_paths.sockets_dir) == 0o700
        assert mode(ssh_paths.config_file) == 0o600
        assert mode(ssh_paths.manifest_file) == 0o600
        for member in ssh_paths.config_d_dir.iterdir():
            assert mode(member) == 0o600

    def test_records_manifest(self, source_repo: Path, ssh_paths: SshPaths):
        make_installer(source_repo, ssh_paths).run()

        manifest = read_manifest(ssh_paths.manifest_file)
        assert manifest is not None
        assert manifest.method == "copy"
        assert manifest.source_dir == str(source_repo)

        dirs = {e.path for e in manifest.entries if e.kind == EntryKind.DIR}
        assert dirs == {ssh_paths.ssh_dir, ssh_paths.sockets_dir, ssh_paths.config_d_dir}

        files = {e.path: e.source for e in manifest.entries if e.kind == EntryKind.FILE}
        assert files[ssh_paths.config_file] == str(source_repo / "config")
        assert len(files) == 5

    def test_existing_ssh_dir_is_not_recorded(self, source_repo: Path, ssh_paths: SshPaths):
        ssh_paths.ssh_dir.mkdir(parents=True)
        (ssh_paths.ssh_dir / "id_ed25519").write_text("key")

        make_installer(source_repo, ssh_paths).run()

        manifest = read_manifest(ssh_paths.manifest_file)
        assert ssh_paths.ssh_dir not in manifest.paths()


class TestSymlinkInstall:
    """Tests for symlink-mode installs."""

    def test_every_fragment_links_into_source(self, source_repo: Path, ssh_paths: SshPaths):
        make_installer(source_repo, ssh_paths, method=InstallMethod.SYMLINK).run()

        assert ssh_paths.config_file.is_symlink()
        assert ssh_paths.config_file.resolve() == (source_repo / "config").resolve()
        for member in ssh_paths.config_d_dir.iterdir():
            assert member.is_symlink()
            assert member.resolve().parent == (source_repo / "config.d").resolve()

    def test_records_symlink_entries(self, source_repo: Path, ssh_paths: SshPaths):
        make_installer(source_repo, ssh_paths, method=InstallMethod.SYMLINK).run()

        manifest = read_manifest(ssh_paths.manifest_file)
        kinds = {e.kind for e in manifest.entries if e.kind != EntryKind.DIR}
        assert manifest.method == "symlink"
        assert kinds == {EntryKind.SYMLINK}

    def test_switching_to_copy_replaces_links(self, source_repo: Path, ssh_paths: SshPaths):
        make_installer(source_repo, ssh_paths, method=InstallMethod.SYMLINK).run()
        make_installer(source_repo, ssh_paths, force=True).run()

        assert not ssh_paths.config_file.is_symlink()
        assert not any(m.is_symlink() for m in ssh_paths.config_d_dir.iterdir())


class TestPlatformFragments:
    @patch("sshconf.core.installer.detect_os_type", return_value=OSType.MACOS)
    def test_macos_install(self, mock_os, source_repo: Path, ssh_paths: SshPaths):
        make_installer(source_repo, ssh_paths).run()

        names = {m.name for m in ssh_paths.config_d_dir.iterdir()}
        assert "01-workstation-mac.conf" in names
        assert "01-workstation-linux.conf.disabled" in names
        assert "01-workstation-linux.conf" not in names

    def test_custom_fragment_table(self, source_repo: Path, ssh_paths: SshPaths):
        table = {"99-example.conf": frozenset({OSType.BSD})}
        make_installer(source_repo, ssh_paths, platform_fragments=table).run()

        names = {m.name for m in ssh_paths.config_d_dir.iterdir()}
        assert "99-example.conf.disabled" in names
        # The custom table replaces the built-in one
        assert "01-workstation-mac.conf" in names


class TestDryRun:
    def test_fresh_dry_run_changes_nothing(
        self, source_repo: Path, ssh_paths: SshPaths, tmp_path: Path, snapshot_tree
    ):
        before = snapshot_tree(tmp_path)

        make_installer(source_repo, ssh_paths, dry_run=True).run()

        assert snapshot_tree(tmp_path) == before
        assert not ssh_paths.ssh_dir.exists()

    def test_dry_run_over_existing_install_changes_nothing(
        self, source_repo: Path, ssh_paths: SshPaths, tmp_path: Path, snapshot_tree
    ):
        make_installer(source_repo, ssh_paths).run()
        (source_repo / "config.d" / "20-new.conf").write_text("Host new\n")
        before = snapshot_tree(tmp_path)

        make_installer(source_repo, ssh_paths, dry_run=True, method=InstallMethod.SYMLINK).run()

        assert snapshot_tree(tmp_path) == before


class TestReinstall:
    """Tests for installing over an existing configuration."""

    def test_force_twice_is_idempotent(
        self, source_repo: Path, ssh_paths: SshPaths, snapshot_tree
    ):
        def installed_state() -> dict:
            state = snapshot_tree(ssh_paths.ssh_dir)
            # Backups are expected to accumulate; the manifest carries a timestamp
            manifest = state.pop(".dotfiles_manifest")
            return {k: v for k, v in state.items() if ".backup." not in k} | {
                ".dotfiles_manifest": manifest[:2]
            }

        make_installer(source_repo, ssh_paths, force=True).run()
        first = installed_state()
        first_entries = set(read_manifest(ssh_paths.manifest_file).entries)

        make_installer(source_repo, ssh_paths, force=True).run()

        assert installed_state() == first
        assert set(read_manifest(ssh_paths.manifest_file).entries) == first_entries

    def test_existing_config_is_backed_up(self, source_repo: Path, ssh_paths: SshPaths):
        ssh_paths.ssh_dir.mkdir(parents=True)
        ssh_paths.config_file.write_text("Host mine\n")

        installer = make_installer(source_repo, ssh_paths, force=True)
        report = installer.run()

        backup = ssh_paths.ssh_dir / f"config{installer.backup_suffix}"
        assert backup.read_text() == "Host mine\n"
        assert backup in report.backups

    def test_prompts_before_backup(self, source_repo: Path, ssh_paths: SshPaths):
        ssh_paths.ssh_dir.mkdir(parents=True)
        ssh_paths.config_file.write_text("Host mine\n")
        prompts = []

        def answer_yes(prompt: str, default: bool) -> bool:
            prompts.append((prompt, default))
            return True

        make_installer(source_repo, ssh_paths, confirm=answer_yes).run()

        assert prompts == [("Backup existing configuration?", False)]

    def test_declining_backup_cancels_without_changes(
        self, source_repo: Path, ssh_paths: SshPaths, snapshot_tree
    ):
        ssh_paths.ssh_dir.mkdir(parents=True)
        ssh_paths.config_file.write_text("Host mine\n")
        before = snapshot_tree(ssh_paths.ssh_dir)

        with pytest.raises(InstallCancelled):
            make_installer(source_repo, ssh_paths, confirm=lambda p, d: False).run()

        assert snapshot_tree(ssh_paths.ssh_dir) == before

    def test_os_change_keeps_ownership_of_old_fragments(
        self, source_repo: Path, ssh_paths: SshPaths
    ):
        make_installer(source_repo, ssh_paths).run()
        with patch("sshconf.core.installer.detect_os_type", return_value=OSType.MACOS):
            make_installer(source_repo, ssh_paths, force=True).run()

        names = {p.name for p in read_manifest(ssh_paths.manifest_file).paths()}
        assert {
            "01-workstation-mac.conf",
            "01-workstation-mac.conf.disabled",
            "01-workstation-linux.conf",
            "01-workstation-linux.conf.disabled",
            "sockets",
            "config.d",
        } <= names

    def test_escaping_entries_are_not_carried_forward(
        self, source_repo: Path, ssh_paths: SshPaths
    ):
        make_installer(source_repo, ssh_paths).run()
        outside = ssh_paths.ssh_dir.parent / ".bashrc"
        outside.write_text("export PATH\n")
        with ssh_paths.manifest_file.open("a") as f:
            f.write(f"file:{ssh_paths.ssh_dir}/../.bashrc:/repo/x\n")

        make_installer(source_repo, ssh_paths, force=True).run()

        names = {p.name for p in read_manifest(ssh_paths.manifest_file).paths()}
        assert ".bashrc" not in names

    def test_unreadable_previous_manifest_is_replaced(
        self, source_repo: Path, ssh_paths: SshPaths
    ):
        make_installer(source_repo, ssh_paths).run()
        ssh_paths.manifest_file.write_bytes(b"[files]\n\xff\xfe\n")

        make_installer(source_repo, ssh_paths, force=True).run()

        manifest = read_manifest(ssh_paths.manifest_file)
        assert ssh_paths.config_file in manifest.paths()

    def test_refuses_to_replace_directory(self, source_repo: Path, ssh_paths: SshPaths):
        (ssh_paths.config_d_dir / "00-defaults.conf").mkdir(parents=True)

        with pytest.raises(Exception, match="Refusing to replace"):
            make_installer(source_repo, ssh_paths, force=True).run()


class TestEnvironmentChecks:
    @patch("sshconf.core.installer.is_root", return_value=True)
    def test_root_declined(self, mock_root, source_repo: Path, ssh_paths: SshPaths):
        with pytest.raises(InstallCancelled):
            make_installer(source_repo, ssh_paths, confirm=lambda p, d: False).run()
        assert not ssh_paths.ssh_dir.exists()

    @patch("sshconf.core.installer.is_root", return_value=True)
    def test_root_with_force(self, mock_root, source_repo: Path, ssh_paths: SshPaths):
        make_installer(source_repo, ssh_paths, force=True).run()
        assert ssh_paths.config_file.exists()

    def test_require_ssh_without_ssh(self, source_repo: Path, ssh_paths: SshPaths):
        with pytest.raises(EnvironmentValidationError, match="ssh"):
            make_installer(source_repo, ssh_paths, require_ssh=True).run()


class TestVerify:
    """Tests for post-install verification."""

    @patch("sshconf.core.installer.check_config_syntax", return_value=(True, ""))
    @patch("sshconf.core.installer.ssh_available", return_value=True)
    def test_valid_syntax(self, mock_available, mock_check, source_repo, ssh_paths):
        make_installer(source_repo, ssh_paths).run()

        mock_check.assert_called_once_with(ssh_paths.config_file)

    @patch(
        "sshconf.core.installer.check_config_syntax",
        return_value=(False, "line 3: Bad configuration option: Bogus"),
    )
    @patch("sshconf.core.installer.ssh_available", return_value=True)
    def test_invalid_syntax_fails(self, mock_available, mock_check, source_repo, ssh_paths):
        with pytest.raises(VerificationError) as exc_info:
            make_installer(source_repo, ssh_paths).run()

        assert exc_info.value.errors == ["SSH config syntax validation failed"]

    def test_broken_symlink_fails(self, source_repo: Path, ssh_paths: SshPaths):
        installer = make_installer(source_repo, ssh_paths, method=InstallMethod.SYMLINK)
        installer.run()
        (source_repo / "config.d" / "99-example.conf").unlink()

        with pytest.raises(VerificationError, match="1 error"):
            installer.verify()

    def test_dry_run_skips_verification(self, source_repo: Path, ssh_paths: SshPaths):
        with patch.object(Installer, "verify") as mock_verify:
            make_installer(source_repo, ssh_paths, dry_run=True).run()
        mock_verify.assert_not_called()
