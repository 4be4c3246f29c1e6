"""Tests for CLI functionality."""

import json
from unittest.mock import patch

from typer.testing import CliRunner

from apps.cli.main import ExitCode, app
from core.errors import NetworkError
from core.manifest_store import ManifestStore


class TestCLI:
    """Test CLI command interface."""

    def setup_method(self):
        """Setup test fixtures."""
        self.runner = CliRunner()

    def invoke(self, root, registry, *args, **kwargs):
        with patch("apps.cli.main.NpmRegistry", return_value=registry):
            return self.runner.invoke(app, ["--root", str(root), *args], **kwargs)

    def test_cli_help_command(self):
        """Should display help when called with --help."""
        result = self.runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "depsync" in result.output.lower()
        assert "upgrade" in result.output.lower()

    def test_exit_codes(self):
        """Should keep exit codes stable."""
        assert [int(code) for code in ExitCode] == [0, 1, 2, 3, 4, 5, 6, 7]

    def test_upgrade_requires_selection(self, monorepo, fake_registry):
        """Should refuse to run without packages, --all or --interactive."""
        result = self.invoke(monorepo, fake_registry, "upgrade")
        assert result.exit_code == ExitCode.ERROR
        assert "Specify packages" in result.output

    def test_upgrade_dry_run(self, monorepo, fake_registry):
        """Should show a diff and leave files alone."""
        manifest = monorepo / "packages" / "a" / "package.json"
        before = manifest.read_bytes()

        result = self.invoke(monorepo, fake_registry, "upgrade", "lodash", "--dry-run")

        assert result.exit_code == 0
        assert "--- packages/a/package.json" in result.output
        assert '-  "lodash": "^4.17.0"' in result.output
        assert '+  "lodash": "^4.17.21"' in result.output
        assert "pinned-skipped" in result.output
        assert "lockfile-stale-reminder" in result.output
        assert manifest.read_bytes() == before

    def test_upgrade_applies(self, monorepo, fake_registry):
        """Should write manifests and report how many changed."""
        result = self.invoke(monorepo, fake_registry, "upgrade", "lodash", "--override-pinned")

        assert result.exit_code == 0
        assert "Updated 2 manifest(s)" in result.output
        assert '"lodash": "4.17.21"' in (monorepo / "packages" / "c" / "package.json").read_text()

    def test_upgrade_all_json(self, monorepo, fake_registry):
        """Should emit parseable JSON."""
        result = self.invoke(monorepo, fake_registry, "upgrade", "--all", "--dry-run", "--format", "json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [(e["manifest"], e["name"], e["new_range"]) for e in data["edits"]] == [
            ("package.json", "typescript", "^5.4.5"),
            ("packages/a/package.json", "lodash", "^4.17.21"),
        ]
        assert data["applied"] is None
        assert {c["name"]: c["classification"] for c in data["conflicts"]}["lodash"] == "divergent-incompatible"

    def test_upgrade_unknown_dependency(self, monorepo, fake_registry):
        """Should exit 0 with a no-usages advisory."""
        result = self.invoke(monorepo, fake_registry, "upgrade", "left-pad")

        assert result.exit_code == 0
        assert "no usages found for left-pad" in result.output
        assert "No changes needed" in result.output

    def test_upgrade_interactive(self, monorepo, fake_registry):
        """Should upgrade only the chosen candidates."""
        result = self.invoke(monorepo, fake_registry, "upgrade", "--interactive", input="4\n")

        assert result.exit_code == 0
        root = json.loads((monorepo / "package.json").read_text())
        assert root["devDependencies"]["typescript"] == "^5.4.5"
        assert '"lodash": "^4.17.0"' in (monorepo / "packages" / "a" / "package.json").read_text()
        assert "! pinned-skipped:" in result.output
        # Once before the prompt and once in the final report
        assert result.output.count("! lockfile-stale-reminder:") == 2

    def test_parse_error_exit_code(self, monorepo, fake_registry):
        """Should print the report and exit non-zero when a manifest is malformed."""
        (monorepo / "packages" / "b" / "package.json").write_text("{ nope")

        result = self.invoke(monorepo, fake_registry, "upgrade", "lodash", "--dry-run")

        assert result.exit_code == ExitCode.PARSE_ERROR
        assert "parse-error" in result.output

    def test_scan_error_exit_code(self, tmp_path, fake_registry):
        """Should exit with the scan error code for a missing root."""
        result = self.invoke(tmp_path / "missing", fake_registry, "upgrade", "--all")
        assert result.exit_code == ExitCode.SCAN_ERROR

    def test_registry_error_exit_code(self, monorepo, registry_factory):
        """Should exit with the registry error code when nothing resolves."""
        registry = registry_factory({}, failures={"lodash": NetworkError("lodash", "offline")})

        result = self.invoke(monorepo, registry, "upgrade", "lodash")

        assert result.exit_code == ExitCode.REGISTRY_ERROR

    def test_plan_error_exit_code(self, monorepo, fake_registry):
        """Should exit with the plan error code for a bad explicit target."""
        result = self.invoke(monorepo, fake_registry, "upgrade", "lodash@latest")
        assert result.exit_code == ExitCode.PLAN_ERROR

    def test_partial_apply_exit_code(self, monorepo, fake_registry):
        """Should exit with the partial apply code when a write fails."""
        with patch.object(ManifestStore, "write", side_effect=OSError("disk full")):
            result = self.invoke(monorepo, fake_registry, "upgrade", "lodash")

        assert result.exit_code == ExitCode.PARTIAL_APPLY
        assert "not written" in result.output

    def test_interrupt_during_write(self, monorepo, fake_registry):
        """Should not claim nothing was written when interrupted mid-apply."""
        with patch.object(ManifestStore, "write", side_effect=KeyboardInterrupt):
            result = self.invoke(monorepo, fake_registry, "upgrade", "lodash")

        assert result.exit_code == ExitCode.CANCELLED
        assert "may already have been written" in result.output
        assert "no manifest was written" not in result.output

    def test_add_dev_dependency(self, monorepo, fake_registry, monkeypatch):
        """Should add to devDependencies of the package in the current directory."""
        package = monorepo / "packages" / "c"
        monkeypatch.chdir(package)

        result = self.invoke(monorepo, fake_registry, "add", "@types/node@^20.0.0", "--dev")

        assert result.exit_code == 0
        data = json.loads((package / "package.json").read_text())
        assert data["devDependencies"] == {"@types/node": "^20.0.0"}

    def test_remove_everywhere(self, monorepo, fake_registry):
        """Should remove a dependency from every package."""
        result = self.invoke(monorepo, fake_registry, "remove", "lodash", "--everywhere")

        assert result.exit_code == 0
        assert "Updated 3 manifest(s)" in result.output

    def test_why(self, monorepo, fake_registry):
        """Should show the latest version and classification."""
        result = self.invoke(monorepo, fake_registry, "why", "lodash")

        assert result.exit_code == 0
        assert "latest: 4.17.21 (divergent-incompatible)" in result.output

    def test_why_unknown(self, monorepo, fake_registry):
        """Should say when nothing declares the dependency."""
        result = self.invoke(monorepo, fake_registry, "why", "left-pad")

        assert result.exit_code == 0
        assert "No usages found for left-pad" in result.output
