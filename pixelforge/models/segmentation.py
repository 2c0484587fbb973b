"""U²-Net background removal.

The image is resized to 320x320 and ImageNet-normalised. The first output is a
single-channel saliency map that is min-max normalised to [0, 255], resized
back to the source size, and written as the alpha channel over the original
RGB pixels.
"""

import time
from pathlib import Path

from pixelforge.imaging import open_image, save_temp_image
from pixelforge.models.base import Model
from pixelforge.pipeline import apply_alpha, decode_mask, encode_imagenet


class BackgroundRemover(Model):
    model_id = "u2net"
    input_size = 320

    def run(self, image_fp: str | Path) -> str:
        """Cut out the foreground of ``image_fp`` and return the saved PNG path."""
        start = time.perf_counter()
        self._stage("preprocessing", 25)
        img = open_image(image_fp)
        tensor = encode_imagenet(img, self.input_size)

        self._stage("inferring", 50)
        outputs = self._infer([tensor])

        self._stage("postprocessing", 80)
        mask = decode_mask(outputs[0], self.input_size, img.size)
        output_fp = save_temp_image(apply_alpha(img, mask), self.out_dir)
        self._stage("complete", 100)
        self.log.info(f"background removed from {img.size} image in {time.perf_counter() - start:.3f}s")
        return output_fp
