"""Tests for layered YAML configuration loading."""

from pathlib import Path

import pytest

from aiplan.application.config_loader import ConfigLoadError, load_config
from aiplan.application.config_models import AppConfig
from aiplan.application.config_provider import ConfigProvider


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.fixture
def dirs(tmp_path: Path) -> tuple[Path, Path]:
    project = tmp_path / "project"
    home = tmp_path / "home"
    project.mkdir()
    home.mkdir()
    return project, home


class TestLoadConfig:
    def test_defaults_without_files(self, dirs):
        project, home = dirs

        config = load_config(project_root=project, user_home=home)

        assert config == AppConfig()
        assert config.auto_context.max_rounds == 2
        assert config.auto_fix.max_retries == 3

    def test_project_overrides_user(self, dirs):
        project, home = dirs
        _write(home / ".aiplan" / "config.yml", "model: user-model\ntemperature: 0.3\n")
        _write(project / ".aiplan" / "config.yml", "model: project-model\n")

        config = load_config(project_root=project, user_home=home)

        assert config.model == "project-model"
        assert config.temperature == 0.3

    def test_nested_sections_are_deep_merged(self, dirs):
        project, home = dirs
        _write(home / ".aiplan" / "config.yml", "auto_context:\n  max_rounds: 4\n")
        _write(project / ".aiplan" / "config.yml", "auto_context:\n  enabled: false\n")

        config = load_config(project_root=project, user_home=home)

        assert config.auto_context.enabled is False
        assert config.auto_context.max_rounds == 4
        assert config.auto_context.max_operations == 10

    def test_empty_file_is_ignored(self, dirs):
        project, home = dirs
        _write(project / ".aiplan" / "config.yml", "")

        assert load_config(project_root=project, user_home=home) == AppConfig()

    def test_malformed_yaml_raises(self, dirs):
        project, home = dirs
        path = project / ".aiplan" / "config.yml"
        _write(path, "model: [unclosed\n")

        with pytest.raises(ConfigLoadError) as exc_info:
            load_config(project_root=project, user_home=home)

        assert exc_info.value.path == path
        assert str(path) in str(exc_info.value)

    def test_non_mapping_root_raises(self, dirs):
        project, home = dirs
        _write(home / ".aiplan" / "config.yml", "- a\n- b\n")

        with pytest.raises(ConfigLoadError, match="mapping"):
            load_config(project_root=project, user_home=home)

    @pytest.mark.parametrize(
        "text",
        [
            "unknown_key: 1\n",
            "auto_context:\n  max_rounds: 9\n",
            "history_scope: everywhere\n",
        ],
    )
    def test_invalid_values_raise(self, dirs, text):
        project, home = dirs
        _write(project / ".aiplan" / "config.yml", text)

        with pytest.raises(ConfigLoadError, match="Invalid configuration"):
            load_config(project_root=project, user_home=home)


def test_provider_config_keys():
    config = AppConfig(model="m", base_url="http://localhost:8000/v1")

    assert config.provider_config() == {
        "model": "m",
        "base_url": "http://localhost:8000/v1",
        "api_key_env": "OPENAI_API_KEY",
        "temperature": None,
        "request_timeout": None,
        "network_retries": 2,
    }


class TestConfigProvider:
    def test_caches_until_invalidated(self, dirs):
        project, home = dirs
        provider = ConfigProvider(project_root=project, user_home=home)

        first = provider.get()
        _write(project / ".aiplan" / "config.yml", "model: changed\n")

        assert provider.get() is first
        assert provider.reload().model == "changed"

    def test_invalidate(self, dirs):
        project, home = dirs
        provider = ConfigProvider(project_root=project, user_home=home)
        provider.get()
        _write(project / ".aiplan" / "config.yml", "diff_viewer: meld\n")

        provider.invalidate()

        assert provider.get().diff_viewer == "meld"
