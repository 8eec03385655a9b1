from pathlib import Path
import os
import yaml


def _project_root() -> Path:
    # doc_chat/utils/config_loader.py -> parents[2] is the repository root
    return Path(__file__).resolve().parents[2]


def load_config(config_path: str | None = None) -> dict:
    """
    Load the YAML config.

    Resolution order: explicit argument, CONFIG_PATH env var, then the
    bundled doc_chat/config/config.yaml. Relative paths are taken from the
    repository root.
    """
    env_path = os.getenv("CONFIG_PATH", None)

    if config_path is None:
        config_path = env_path or str(_project_root() / "doc_chat" / "config" / "config.yaml")

    path = Path(config_path)

    if not path.is_absolute():
        path = _project_root() / path
    if not path.exists():
        raise FileNotFoundError(f"Config file not found at {path}")
    with open(path, "r", encoding="utf-8") as file:
        return yaml.safe_load(file) or {}


def resolve_path(value: str | Path) -> Path:
    """Resolve a configured path (upload dir, faiss dir) against the repository root."""
    path = Path(value)
    if not path.is_absolute():
        path = _project_root() / path
    return path
