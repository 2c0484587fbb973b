"""Pytest fixtures for PixelForge tests."""

import hashlib, json, logging, pathlib

import numpy as np
import pytest
from PIL import Image

from pixelforge.engine.base import EngineBase
from pixelforge.model_registry import list_models


class FakeEngine(EngineBase):
    """In-memory engine that answers every run with ``respond(inputs)``."""

    def __init__(self, model_fp: pathlib.Path, respond):
        self._model_fp = pathlib.Path(model_fp)
        self._respond = respond
        self.calls: list[list[np.ndarray]] = []

    def load(self) -> None:
        """No-op load for the fake engine."""

    def run(self, inputs: list[np.ndarray]) -> list[np.ndarray]:
        self.calls.append([np.array(inp, copy=True) for inp in inputs])
        return [np.asarray(out, dtype=np.float32) for out in self._respond(inputs)]

    def model_path(self) -> pathlib.Path:
        return self._model_fp


class RecordingSink:
    """Sink that keeps every delivered event in memory."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def __call__(self, event: str, payload: dict) -> None:
        self.events.append((event, dict(payload)))

    def named(self, event: str) -> list[dict]:
        """Return payloads delivered under one event name."""
        return [payload for name, payload in self.events if name == event]


def _upscale_x4(inputs: list[np.ndarray]) -> list[np.ndarray]:
    """Nearest-neighbour 4x of the [0, 1] input tile."""
    tile = inputs[0]
    return [tile.repeat(4, axis=2).repeat(4, axis=3)]


def _invert_pixels(inputs: list[np.ndarray]) -> list[np.ndarray]:
    """Photographic negative of the raw [0, 255] image input."""
    return [255.0 - inputs[0]]


def _centre_saliency(inputs: list[np.ndarray]) -> list[np.ndarray]:
    size = inputs[0].shape[-1]
    mask = np.zeros((1, 1, size, size), dtype=np.float32)
    mask[..., size // 4:3 * size // 4, size // 4:3 * size // 4] = 1.0
    return [mask]


def _ranked_logits(inputs: list[np.ndarray]) -> list[np.ndarray]:
    logits = np.zeros((1, 1000), dtype=np.float32)
    logits[0, :3] = [2.0, 1.0, 0.1]
    return [logits]


# Fake responses keyed by catalog family.
FAKE_RESPONSES = {
    "segmentation": _centre_saliency,
    "classification": _ranked_logits,
    "style_transfer": _invert_pixels,
    "super_resolution": _upscale_x4,
    "inpainting": _invert_pixels,
}


#===============================================================================
# pytest custom config------------
#===============================================================================


def pytest_runtest_teardown(item, nextitem):
    """Custom teardown message."""
    test_name = item.name
    print(f"\n{'='*20} Test completed: {test_name} {'='*20}\n\n\n")


def pytest_report_header(config):
    """Show pytest invocation arguments in the test header."""
    return f"pytest arguments: {' '.join(config.invocation_params.args)}"


# -------------------
# ----- Fixtures -----
# -------------------
@pytest.fixture(scope="session")
def logger():
    """Simple logger fixture for the function under test."""
    log = logging.getLogger("pytest")
    log.setLevel(logging.DEBUG)
    # keep handlers minimal to avoid duplicate logs across runs
    if not log.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(logging.DEBUG)
        formatter = logging.Formatter("%(levelname)s:%(name)s:%(message)s")
        handler.setFormatter(formatter)
        log.addHandler(handler)
    return log


@pytest.fixture(scope="function")
def sink() -> RecordingSink:
    """In-memory progress sink."""
    return RecordingSink()


@pytest.fixture(scope="function")
def models_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    """Empty installed-models directory."""
    fp = tmp_path / "models"
    fp.mkdir()
    return fp


@pytest.fixture(scope="function")
def installed_models_dir(models_dir: pathlib.Path) -> pathlib.Path:
    """Models directory holding a placeholder file for every catalog entry."""
    for model in list_models():
        (models_dir / model.filename).write_bytes(b"placeholder")
    return models_dir


@pytest.fixture(scope="function")
def fake_engine_factory():
    """Engine factory returning FakeEngine instances answered by model family."""
    by_filename = {model.filename: model.family for model in list_models()}
    built: list[FakeEngine] = []

    def factory(model_fp: pathlib.Path) -> FakeEngine:
        engine = FakeEngine(model_fp, FAKE_RESPONSES[by_filename[pathlib.Path(model_fp).name]])
        built.append(engine)
        return engine

    factory.built = built
    return factory


@pytest.fixture(scope="function")
def models_manifest_fp(tmp_path: pathlib.Path) -> pathlib.Path:
    """Create a local manifest with one hashed and one unhashed file:// model."""
    hashed_fp = tmp_path / "source_hashed.onnx"
    hashed_fp.write_bytes(b"hashed-test-model")
    plain_fp = tmp_path / "source_plain.onnx"
    plain_fp.write_bytes(b"plain-test-model")
    manifest = {
        "models": {
            "m-hashed": {
                "name": "Hashed Model",
                "description": "Local model with a digest.",
                "family": "segmentation",
                "url": hashed_fp.as_uri(),
                "filename": "hashed.onnx",
                "size_bytes": hashed_fp.stat().st_size,
                "sha256": hashlib.sha256(hashed_fp.read_bytes()).hexdigest(),
            },
            "m-plain": {
                "name": "Plain Model",
                "description": "Local model without a digest.",
                "family": "classification",
                "url": plain_fp.as_uri(),
                "filename": "plain.onnx",
                "size_bytes": plain_fp.stat().st_size,
                "sha256": None,
            },
        }
    }
    manifest_fp = tmp_path / "models.json"
    manifest_fp.write_text(json.dumps(manifest), encoding="utf-8")
    return manifest_fp


@pytest.fixture(scope="function")
def image_fp(tmp_path: pathlib.Path) -> pathlib.Path:
    """Write a 64x48 RGB gradient PNG."""
    x = np.linspace(0, 255, 64, dtype=np.float32)
    y = np.linspace(0, 255, 48, dtype=np.float32)
    rgb = np.stack(
        [np.tile(x, (48, 1)), np.tile(y[:, None], (1, 64)), np.full((48, 64), 90.0, dtype=np.float32)],
        axis=-1,
    ).astype(np.uint8)
    fp = tmp_path / "input.png"
    Image.fromarray(rgb).save(fp)
    return fp
