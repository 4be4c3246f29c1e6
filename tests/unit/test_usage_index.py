"""Tests for the cross-manifest usage index."""

from core.scanner import load_workspace
from core.usage_index import UsageIndex


class TestUsageIndex:
    """Test indexing declarations across a workspace."""

    def build(self, root):
        workspace = load_workspace(root)
        return workspace, UsageIndex.build(workspace)

    def test_names_sorted(self, monorepo):
        """Should list every distinct dependency in sorted order."""
        _, index = self.build(monorepo)
        assert index.names() == ["jest", "lodash", "react", "shared", "typescript"]

    def test_entries_in_manifest_order(self, monorepo):
        """Should return one entry per declaration in scan order."""
        _, index = self.build(monorepo)
        root = monorepo.resolve()

        entries = index.entries_for("lodash")

        assert [(e.manifest.parent.name, e.field, e.range) for e in entries] == [
            ("a", "dependencies", "^4.17.0"),
            ("b", "dependencies", "^4.17.21"),
            ("c", "dependencies", "4.17.15"),
        ]
        assert all(e.manifest.is_relative_to(root) for e in entries)

    def test_ranges_deduplicated(self, tmp_path, package_writer):
        """Should report each distinct range once."""
        package_writer(tmp_path, {"name": "root", "workspaces": ["p/*"]})
        package_writer(tmp_path / "p" / "one", {"dependencies": {"zod": "^3.0.0"}})
        package_writer(tmp_path / "p" / "two", {"dependencies": {"zod": "^3.0.0"}, "devDependencies": {"zod": "^3.1.0"}})
        _, index = self.build(tmp_path)

        assert index.ranges_for("zod") == ["^3.0.0", "^3.1.0"]
        assert [p.parent.name for p in index.manifests_declaring("zod")] == ["one", "two"]

    def test_unknown_name(self, monorepo):
        """Should return nothing for an undeclared dependency."""
        _, index = self.build(monorepo)
        assert "left-pad" not in index
        assert index.entries_for("left-pad") == []
        assert index.ranges_for("left-pad") == []

    def test_entries_are_copies(self, monorepo):
        """Should not let callers mutate the index."""
        _, index = self.build(monorepo)
        index.entries_for("lodash").clear()
        assert len(index.entries_for("lodash")) == 3
        assert len(index) == 5
