"""Test that project structure is correct and modules can be imported."""

from pathlib import Path

import core.engine
import core.models
import core.scanner
from core.models import Edit, UpgradePlan


def test_core_modules_importable():
    """Ensure core modules can be imported."""
    # This will fail if modules have syntax errors or missing dependencies

    # Basic smoke test - ensure key classes exist
    assert hasattr(core.models, "Manifest")
    assert hasattr(core.models, "UsageEntry")
    assert hasattr(core.models, "ConflictReport")
    assert hasattr(core.engine, "UpgradeEngine")
    assert hasattr(core.scanner, "scan")


def test_model_creation():
    """Test that basic models can be instantiated."""
    edit = Edit(Path("package.json"), "dependencies", "lodash", "^4.17.0", "^4.17.21")
    assert edit.name == "lodash"
    assert not edit.is_noop

    plan = UpgradePlan(edits=(edit,))
    assert not plan.is_empty
    assert plan.manifests() == [Path("package.json")]
