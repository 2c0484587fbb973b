"""Path helpers for installed model weights."""

import logging, os
from pathlib import Path
from platformdirs import user_data_dir


APP_NAME = "pixelforge"
APP_AUTHOR = "pixelforge"
MODELS_DIR_ENV = "PIXELFORGE_MODELS_DIR"
log = logging.getLogger(__name__)


def get_models_dir(models_dir: str | Path | None = None) -> Path:
    """Return a writable models directory and ensure it exists."""
    # Prefer an explicit directory, then the environment override.
    if models_dir is not None:
        path = Path(models_dir).expanduser().resolve()
    elif os.environ.get(MODELS_DIR_ENV):
        path = Path(os.environ[MODELS_DIR_ENV]).expanduser().resolve()
    else:
        # Use a stable per-platform application data path.
        path = Path(user_data_dir(APP_NAME, APP_AUTHOR)) / "models"
    path.mkdir(parents=True, exist_ok=True)
    assert path.exists(), f"failed to create models directory: {path}"
    log.debug(f"resolved models directory to\n    {path}")
    return path


def get_model_file_path(filename: str, models_dir: str | Path | None = None) -> Path:
    """Return the local path for one model weight file (it may not exist yet)."""
    assert filename, "filename cannot be empty"
    model_fp = get_models_dir(models_dir) / filename
    log.debug(f"resolved model file path to\n    {model_fp}")
    return model_fp
