"""Tests for the static model catalog."""

import json
from pathlib import Path

import pytest

from pixelforge.errors import ModelNotFoundError
from pixelforge.model_registry import (
    DEFAULT_MANIFEST_FP,
    MODEL_FAMILIES,
    STYLE_MODEL_IDS,
    find_model,
    list_models,
    load_models_manifest,
    resolve_model,
)
from pixelforge.models import BackgroundRemover, Classifier, Inpainter, Upscaler


pytestmark = pytest.mark.unit


def test_default_manifest_lists_catalog_in_order():
    """The packaged catalog exposes all nine models in manifest order."""
    ids = [model.id for model in list_models()]
    assert ids == [
        "u2net",
        "realesrgan-x4",
        "lama",
        *STYLE_MODEL_IDS,
        "mobilenetv2",
    ]
    assert DEFAULT_MANIFEST_FP.exists()


def test_only_u2net_carries_a_digest():
    """Catalog entries without a digest are trusted once present."""
    hashed = {model.id: model.sha256 for model in list_models() if model.sha256}
    assert list(hashed) == ["u2net"]
    assert len(hashed["u2net"]) == 64


@pytest.mark.parametrize(
    "worker_cls, family",
    [
        pytest.param(BackgroundRemover, "segmentation", id="segmentation"),
        pytest.param(Classifier, "classification", id="classification"),
        pytest.param(Upscaler, "super_resolution", id="super_resolution"),
        pytest.param(Inpainter, "inpainting", id="inpainting"),
    ],
)
def test_worker_default_model_matches_family(worker_cls, family: str):
    """Each fixed-model worker points at a catalog entry of its family."""
    assert resolve_model(worker_cls.model_id).family == family


def test_catalog_families_are_known():
    """Every catalog entry belongs to a known family."""
    assert {model.family for model in list_models()} == set(MODEL_FAMILIES)


def test_style_ids_are_style_transfer_models():
    """Every recognised style id is a style-transfer catalog entry."""
    for style_id in STYLE_MODEL_IDS:
        assert resolve_model(style_id).family == "style_transfer"


@pytest.mark.parametrize(
    "model_id, filename",
    [
        pytest.param("u2net", "u2net.onnx", id="u2net"),
        pytest.param("lama", "lama_fp32.onnx", id="lama"),
        pytest.param("mobilenetv2", "mobilenetv2-12.onnx", id="mobilenetv2"),
    ],
)
def test_resolve_model_returns_descriptor(model_id: str, filename: str):
    """Known ids resolve to their descriptor."""
    model = resolve_model(model_id)
    assert model.id == model_id
    assert model.filename == filename
    assert model.size_bytes > 0


def test_unknown_model_id():
    """Unknown ids are None from find_model and ModelNotFound from resolve_model."""
    assert find_model("not-a-model") is None
    with pytest.raises(ModelNotFoundError) as exc_info:
        resolve_model("not-a-model")
    assert exc_info.value.kind == "ModelNotFound"
    assert "not-a-model" in str(exc_info.value)


def test_alternate_manifest(models_manifest_fp: Path):
    """A custom manifest replaces the packaged catalog."""
    records = list_models(manifest_fp=models_manifest_fp)
    assert [record.id for record in records] == ["m-hashed", "m-plain"]
    assert records[1].sha256 is None


def test_load_models_manifest_rejects_non_mapping(tmp_path: Path):
    """A manifest whose models field is not a mapping is rejected."""
    manifest_fp = tmp_path / "bad.json"
    manifest_fp.write_text(json.dumps({"models": ["u2net"]}), encoding="utf-8")
    with pytest.raises(ValueError, match="must be a dictionary"):
        load_models_manifest(manifest_fp)


def test_load_models_manifest_missing_file(tmp_path: Path):
    """A missing manifest raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        load_models_manifest(tmp_path / "absent.json")
