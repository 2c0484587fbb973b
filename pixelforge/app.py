"""Process-level application context exposing the PixelForge operations."""

import logging
from pathlib import Path

from pixelforge.cache_paths import get_models_dir
from pixelforge.events import EventSink
from pixelforge.models import BackgroundRemover, ClassificationResult, Classifier, Inpainter, StyleTransfer, Upscaler
from pixelforge.provisioning import (
    ModelStatus,
    delete_model,
    fetch_model,
    fetch_model_async,
    get_installed_model_path,
    get_models_status,
)
from pixelforge.session import EngineFactory, SessionRegistry


log = logging.getLogger(__name__)


class PixelForgeApp:
    """
    Owns the session registry and the settings every operation shares.

    Parameters
    ----------
    models_dir:
        Installed-models directory override (see ``cache_paths.get_models_dir``).
    out_dir:
        Directory for result images; defaults to the system temp directory.
    manifest_fp:
        Optional alternate model manifest.
    sink:
        Optional progress sink receiving operation and download events.
    engine_factory:
        Builds an engine from a model file; defaults to ONNX Runtime.
    logger:
        Optional logger instance.
    """

    def __init__(
        self,
        models_dir: str | Path | None = None,
        out_dir: str | Path | None = None,
        manifest_fp: str | Path | None = None,
        sink: EventSink | None = None,
        engine_factory: EngineFactory | None = None,
        logger=None,
    ):
        self.models_dir = get_models_dir(models_dir)
        self.out_dir = out_dir
        self.manifest_fp = manifest_fp
        self.sink = sink
        self.log = logger or log
        self.sessions = SessionRegistry(self.model_path, engine_factory=engine_factory, logger=self.log)

    def model_path(self, model_id: str) -> Path:
        """Return the installed weight file for ``model_id`` (ModelNotFoundError if absent)."""
        return get_installed_model_path(model_id, models_dir=self.models_dir, manifest_fp=self.manifest_fp)

    def _worker_kwargs(self) -> dict[str, object]:
        return {"sink": self.sink, "out_dir": self.out_dir, "logger": self.log}

    # Inference operations ---------------------------------------------------

    def remove_background(self, image_fp: str | Path) -> str:
        with BackgroundRemover(self.sessions, **self._worker_kwargs()) as worker:
            return worker.run(image_fp)

    def classify(self, image_fp: str | Path) -> list[ClassificationResult]:
        with Classifier(self.sessions, **self._worker_kwargs()) as worker:
            return worker.run(image_fp)

    def style_transfer(self, image_fp: str | Path, style_id: str, strength: float = 1.0) -> str:
        with StyleTransfer(self.sessions, style_id, **self._worker_kwargs()) as worker:
            return worker.run(image_fp, strength=strength)

    def upscale(self, image_fp: str | Path, scale: int = 4, use_progress: bool = False) -> str:
        with Upscaler(self.sessions, use_progress=use_progress, **self._worker_kwargs()) as worker:
            return worker.run(image_fp, scale=scale)

    def inpaint(self, image_fp: str | Path, mask_data: bytes, mask_width: int, mask_height: int) -> str:
        with Inpainter(self.sessions, **self._worker_kwargs()) as worker:
            return worker.run(image_fp, mask_data, mask_width, mask_height)

    # Model management -------------------------------------------------------

    def get_models_status(self) -> list[ModelStatus]:
        return get_models_status(models_dir=self.models_dir, manifest_fp=self.manifest_fp)

    def download_model(self, model_id: str, backend_name: str | None = None) -> Path:
        return fetch_model(
            model_id,
            models_dir=self.models_dir,
            manifest_fp=self.manifest_fp,
            backend_name=backend_name,
            sink=self.sink,
            logger=self.log,
        )

    async def download_model_async(self, model_id: str, backend_name: str | None = None) -> Path:
        return await fetch_model_async(
            model_id,
            models_dir=self.models_dir,
            manifest_fp=self.manifest_fp,
            backend_name=backend_name,
            sink=self.sink,
            logger=self.log,
        )

    def delete_model(self, model_id: str) -> None:
        delete_model(model_id, models_dir=self.models_dir, manifest_fp=self.manifest_fp)
