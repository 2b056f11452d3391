from pathlib import Path


def get_project_root() -> Path:
    """Returns the root directory of the project."""
    # This file is in reader_core/utils/paths.py
    # Root is 3 levels up
    return Path(__file__).resolve().parent.parent.parent


def get_default_data_dir() -> Path:
    """Returns the directory where reader state is stored by default."""
    return get_project_root() / "data"


def ensure_dir_exists(path: Path) -> None:
    """Ensures that a directory exists."""
    if not path.exists():
        path.mkdir(parents=True, exist_ok=True)
