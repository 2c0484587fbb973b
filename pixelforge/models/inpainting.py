"""LaMa inpainting at a fixed 512x512 working resolution."""

from pathlib import Path

import numpy as np
from PIL import Image

from pixelforge.imaging import HIGH_QUALITY, NEAREST, mask_from_bytes, open_image, resize, save_temp_image, to_rgb_array
from pixelforge.models.base import Model
from pixelforge.pipeline import binarize_mask, composite, decode_rgb, encode_raw


class Inpainter(Model):
    model_id = "lama"
    input_size = 512

    def run(self, image_fp: str | Path, mask_data: bytes, mask_width: int, mask_height: int) -> str:
        """Fill the ``> 128`` region of the mask and return the saved PNG path.

        Pixels outside the mask keep their original values exactly.
        """
        self._stage("preprocessing", 25)
        img = open_image(image_fp)
        orig_w, orig_h = img.size
        mask = mask_from_bytes(mask_data, mask_width, mask_height)
        size = self.input_size
        image_tensor = encode_raw(to_rgb_array(resize(img, size, size, HIGH_QUALITY)))
        mask_tensor = binarize_mask(mask, size)

        self._stage("inferring", 50)
        outputs = self._infer([image_tensor, mask_tensor])

        self._stage("postprocessing", 80)
        inpainted = Image.fromarray(decode_rgb(outputs[0], size, size))
        inpainted_full = to_rgb_array(resize(inpainted, orig_w, orig_h, HIGH_QUALITY))
        mask_full = np.asarray(resize(mask, orig_w, orig_h, NEAREST), dtype=np.uint8)
        result = composite(to_rgb_array(img), inpainted_full, mask_full)
        output_fp = save_temp_image(Image.fromarray(result), self.out_dir)
        self._stage("complete", 100)
        return output_fp
