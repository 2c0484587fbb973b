"""Inference engine interfaces for PixelForge."""

from abc import ABC, abstractmethod
from pathlib import Path

import numpy as np


class EngineBase(ABC):
    """Abstract interface for a loaded, ready-to-run model graph."""

    @abstractmethod
    def load(self) -> None:
        """Load model resources into memory."""

    @abstractmethod
    def run(self, inputs: list[np.ndarray]) -> list[np.ndarray]:
        """Run one forward pass; inputs are bound to graph inputs in declaration order."""

    @abstractmethod
    def model_path(self) -> Path:
        """Return the model path used by this engine."""
