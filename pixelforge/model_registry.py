"""Static model catalog loaded from the packaged manifest."""

import json, logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from pixelforge.errors import ModelNotFoundError


DEFAULT_MANIFEST_FP = Path(__file__).with_name("models.json")
MODEL_FAMILIES = ("segmentation", "classification", "style_transfer", "super_resolution", "inpainting")
STYLE_MODEL_IDS = (
    "style-mosaic",
    "style-candy",
    "style-rain-princess",
    "style-udnie",
    "style-pointilism",
)
log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelDescriptor:
    """Immutable catalog entry for one downloadable model."""

    id: str
    name: str
    url: str
    filename: str
    size_bytes: int
    sha256: str | None = None
    description: str = ""
    family: str = ""


def load_models_manifest(manifest_fp: str | Path | None = None) -> dict:
    """Load the model manifest from disk."""
    manifest_path = Path(manifest_fp).expanduser().resolve() if manifest_fp else DEFAULT_MANIFEST_FP
    if not manifest_path.exists():
        raise FileNotFoundError(f"manifest does not exist: {manifest_path}")

    # Read JSON manifest and return the payload.
    manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    models = manifest.get("models", {})
    if not isinstance(models, dict):
        raise ValueError("manifest field 'models' must be a dictionary")
    return models


def _to_descriptor(model_id: str, payload: dict) -> ModelDescriptor:
    """Normalize one manifest payload into a typed descriptor."""
    family = payload.get("family", "")
    assert family in MODEL_FAMILIES, f"model '{model_id}' has unknown family '{family}'"
    return ModelDescriptor(
        id=model_id,
        name=payload["name"],
        url=payload["url"],
        filename=payload["filename"],
        size_bytes=int(payload["size_bytes"]),
        sha256=payload.get("sha256") or None,
        description=payload.get("description", ""),
        family=family,
    )


@lru_cache(maxsize=None)
def _load_catalog(manifest_path: Path) -> tuple[ModelDescriptor, ...]:
    models = load_models_manifest(manifest_path)
    catalog = tuple(_to_descriptor(model_id, payload) for model_id, payload in models.items())
    log.debug(f"loaded {len(catalog)} model descriptors from\n    {manifest_path}")
    return catalog


def list_models(manifest_fp: str | Path | None = None) -> list[ModelDescriptor]:
    """Return all models defined in the manifest, in manifest order."""
    manifest_path = Path(manifest_fp).expanduser().resolve() if manifest_fp else DEFAULT_MANIFEST_FP
    return list(_load_catalog(manifest_path))


def find_model(model_id: str, manifest_fp: str | Path | None = None) -> ModelDescriptor | None:
    """Return the descriptor for ``model_id`` or None when unknown."""
    return next((model for model in list_models(manifest_fp) if model.id == model_id), None)


def resolve_model(model_id: str, manifest_fp: str | Path | None = None) -> ModelDescriptor:
    """Return the descriptor for ``model_id`` or raise ModelNotFoundError."""
    assert model_id, "model_id cannot be empty"
    model = find_model(model_id, manifest_fp=manifest_fp)
    if model is None:
        available = ", ".join(m.id for m in list_models(manifest_fp))
        raise ModelNotFoundError(f"{model_id} (available: {available})")
    return model
