"""Base model worker contract for PixelForge model families."""

import logging
from pathlib import Path
from typing import Any

import numpy as np

from pixelforge.events import EventSink, emit_stage
from pixelforge.session import SessionRegistry


class Model:
    """Base class for per-family model workers.

    Entering the worker context builds (or reuses) the engine for ``model_id``;
    ``run`` encodes inputs, runs the engine under the registry lock, and decodes
    the outputs.
    """

    model_id = ""
    loading_percent = 10

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        model_id: str | None = None,
        sink: EventSink | None = None,
        out_dir: str | Path | None = None,
        logger=None,
    ):
        """Initialize a worker bound to a session registry."""
        if model_id is not None:
            assert model_id, "model_id cannot be empty"
            self.model_id = model_id
        assert self.model_id, f"{type(self).__name__} requires a model_id"
        self.registry = registry
        self.sink = sink
        self.out_dir = out_dir
        self.log = logger or logging.getLogger(__name__)

    def __enter__(self):
        """Make sure the engine for this worker's model is loaded."""
        self._stage("loading_model", self.loading_percent)
        self.registry.ensure_session(self.model_id)
        return self

    def __exit__(self, exc_type, exc, tb):
        """Exit worker context; engines stay cached in the registry."""
        return False

    def _stage(self, stage: str, percent: int) -> None:
        emit_stage(self.sink, stage, percent)

    def _infer(self, inputs: list[np.ndarray]) -> list[np.ndarray]:
        """Run one forward pass with exclusive access to the engine."""
        return self.registry.with_session(self.model_id, lambda engine: engine.run(inputs))

    def run(self, **kwargs: Any) -> Any:
        """Run the model-specific flow."""
        raise NotImplementedError("Model.run must be implemented by subclasses")
