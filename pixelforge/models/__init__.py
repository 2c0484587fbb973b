"""Per-family model workers."""

from pixelforge.models.base import Model
from pixelforge.models.classification import ClassificationResult, Classifier
from pixelforge.models.inpainting import Inpainter
from pixelforge.models.segmentation import BackgroundRemover
from pixelforge.models.style_transfer import StyleTransfer
from pixelforge.models.super_resolution import Upscaler


__all__ = [
    "Model",
    "BackgroundRemover",
    "Classifier",
    "ClassificationResult",
    "Inpainter",
    "StyleTransfer",
    "Upscaler",
]
