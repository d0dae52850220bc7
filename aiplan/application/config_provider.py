from pathlib import Path

from aiplan.application.config_loader import load_config
from aiplan.application.config_models import AppConfig


class ConfigProvider:
    """Loads configuration once and hands it to the components that need it.

    The cached value is dropped by ``invalidate()``; ``reload()`` drops and
    loads again immediately.
    """

    def __init__(self, project_root: Path | None = None, user_home: Path | None = None):
        self.project_root = project_root or Path.cwd()
        self.user_home = user_home or Path.home()
        self._config: AppConfig | None = None

    def get(self) -> AppConfig:
        if self._config is None:
            self._config = load_config(project_root=self.project_root, user_home=self.user_home)
        return self._config

    def invalidate(self) -> None:
        self._config = None

    def reload(self) -> AppConfig:
        self.invalidate()
        return self.get()
