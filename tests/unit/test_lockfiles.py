"""Tests for lockfile detection."""

from core.lockfiles import detect_package_manager, scan, stale_reminders
from core.models import AdvisoryKind, LockfileRecord


class TestLockfiles:
    """Test lockfile discovery and reminders."""

    def test_scan_root_and_members(self, tmp_path):
        """Should find lockfiles at the root and beside member manifests."""
        (tmp_path / "yarn.lock").write_text("")
        member = tmp_path / "packages" / "a"
        member.mkdir(parents=True)
        (member / "package-lock.json").write_text("{}")

        records = scan(tmp_path, [member / "package.json"])

        assert records == [
            LockfileRecord(path=member / "package-lock.json", kind="npm"),
            LockfileRecord(path=tmp_path / "yarn.lock", kind="yarn"),
        ]

    def test_scan_no_lockfiles(self, tmp_path):
        """Should return an empty list when there is nothing to report."""
        assert scan(tmp_path) == []

    def test_detect_package_manager(self, tmp_path):
        """Should name the manager owning the root lockfile."""
        assert detect_package_manager(tmp_path) is None
        (tmp_path / "pnpm-lock.yaml").write_text("lockfileVersion: '9.0'\n")
        assert detect_package_manager(tmp_path) == "pnpm"

    def test_shrinkwrap_is_npm(self, tmp_path):
        """Should report npm for a shrinkwrap file."""
        (tmp_path / "npm-shrinkwrap.json").write_text("{}")
        assert detect_package_manager(tmp_path) == "npm"

    def test_stale_reminders(self, tmp_path):
        """Should produce one reminder per lockfile with the install command."""
        records = [LockfileRecord(path=tmp_path / "bun.lockb", kind="bun")]

        advisories = stale_reminders(records, tmp_path)

        assert len(advisories) == 1
        assert advisories[0].kind == AdvisoryKind.LOCKFILE_STALE
        assert advisories[0].message.startswith("bun.lockb (bun) is not updated by depsync")
        assert "`bun install`" in advisories[0].message
