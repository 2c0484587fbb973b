"""Fast neural style transfer with strength blending."""

from pathlib import Path

from PIL import Image

from pixelforge.errors import ModelNotFoundError
from pixelforge.imaging import HIGH_QUALITY, open_image, resize, save_temp_image, to_rgb_array
from pixelforge.model_registry import STYLE_MODEL_IDS
from pixelforge.models.base import Model
from pixelforge.pipeline import blend, cap_longer_side, decode_rgb, encode_raw


MAX_STYLE_DIM = 2048


class StyleTransfer(Model):
    """Restyle an image with one of the catalog style models.

    Inputs stay in raw [0, 255]; images whose longer side exceeds
    ``max_dim`` are processed downscaled and upscaled back afterwards.
    """

    def __init__(self, registry, style_id: str, *, max_dim: int = MAX_STYLE_DIM, **kwargs):
        if style_id not in STYLE_MODEL_IDS:
            raise ModelNotFoundError(f"Unknown style model: {style_id}")
        super().__init__(registry, model_id=style_id, **kwargs)
        assert max_dim > 0, f"max_dim must be > 0; got {max_dim}"
        self.max_dim = int(max_dim)

    def run(self, image_fp: str | Path, strength: float = 1.0) -> str:
        """Apply the style at ``strength`` (clamped to [0, 1]) and return the saved PNG path."""
        self._stage("preprocessing", 25)
        img = open_image(image_fp)
        orig_w, orig_h = img.size
        process_img, was_capped = cap_longer_side(img, self.max_dim)
        if was_capped:
            self.log.info(f"downscaled {img.size} to {process_img.size} for style transfer")
        rgb = to_rgb_array(process_img)
        height, width = rgb.shape[:2]

        self._stage("inferring", 50)
        outputs = self._infer([encode_raw(rgb)])

        self._stage("postprocessing", 80)
        styled = decode_rgb(outputs[0], height, width)
        result = Image.fromarray(blend(rgb, styled, strength))
        if was_capped:
            result = resize(result, orig_w, orig_h, HIGH_QUALITY)
        output_fp = save_temp_image(result, self.out_dir)
        self._stage("complete", 100)
        return output_fp
