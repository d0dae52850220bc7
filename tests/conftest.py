from pathlib import Path
import pytest

from aiplan.domain.providers.provider_factory import ProviderFactory
from tests.fakes import FakeProvider


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent unit tests from accidentally using developer machine env vars.

    If a test needs an env var, it should set it explicitly via monkeypatch.
    """
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


@pytest.fixture(autouse=True)
def _register_test_providers():
    """Register the fake provider and restore the registry afterward."""
    original_registry = dict(ProviderFactory._registry)
    ProviderFactory.register("fake", FakeProvider)

    yield

    ProviderFactory._registry.clear()
    ProviderFactory._registry.update(original_registry)
    FakeProvider.replies = []
    FakeProvider.instances = []


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A throwaway repository root used as the working directory.

    HOME points into tmp_path so user config and global history stay hermetic.
    """
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))

    root = tmp_path / "project"
    root.mkdir()
    (root / ".git").mkdir()
    monkeypatch.chdir(root)
    return root
