# Per-user and per-project data directory
CONFIG_DIR_NAME = ".aiplan"
CONFIG_FILENAME = "config.yml"
HISTORY_FILENAME = "history.json"
HISTORY_TEMP_SUFFIX = ".json.tmp"
IGNORE_FILENAME = ".aiplanignore"

# Markers that identify a repository root, nearest first
REPO_ROOT_MARKERS = (".git", "pyproject.toml", "package.json")

# Directories skipped by the context collector
SKIPPED_DIRECTORIES = {".git", "node_modules", "__pycache__", ".venv"}

DEFAULT_PLAN_DESCRIPTION = "AI plan execution"
DEFAULT_EXPORT_FILENAME = "plan.json"
