"""MobileNetV2 image classification."""

from pathlib import Path
from typing import NamedTuple

from pixelforge.imaging import open_image
from pixelforge.labels import load_labels
from pixelforge.models.base import Model
from pixelforge.pipeline import encode_imagenet, softmax, top_k


class ClassificationResult(NamedTuple):
    label: str
    confidence: float

    def to_dict(self) -> dict[str, object]:
        return {"label": self.label, "confidence": self.confidence}


class Classifier(Model):
    """Top-k ImageNet classification from 224x224 normalised input."""

    model_id = "mobilenetv2"
    input_size = 224
    result_count = 5

    def __init__(self, *args, labels: tuple[str, ...] | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.labels = list(labels if labels is not None else load_labels())

    def run(self, image_fp: str | Path) -> list[ClassificationResult]:
        """Return the most probable labels for ``image_fp``, most likely first."""
        self._stage("preprocessing", 25)
        tensor = encode_imagenet(open_image(image_fp), self.input_size)

        self._stage("inferring", 50)
        outputs = self._infer([tensor])

        self._stage("postprocessing", 90)
        probabilities = softmax(outputs[0])
        results = [ClassificationResult(label, conf) for label, conf in top_k(probabilities, self.labels, self.result_count)]
        self._stage("complete", 100)
        self.log.debug(f"top prediction: {results[0].label} ({results[0].confidence:.4f})")
        return results
