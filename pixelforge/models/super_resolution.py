"""Real-ESRGAN x4 upscaling through tiled inference."""

from pathlib import Path

from PIL import Image

from pixelforge.imaging import HIGH_QUALITY, open_image, resize, save_temp_image, to_rgb_array
from pixelforge.models.base import Model
from pixelforge.tiling import DEFAULT_OVERLAP, DEFAULT_TILE_SIZE, run_tiled


SUPPORTED_SCALES = (2, 4)


class Upscaler(Model):
    """Upscale by 2x or 4x; the model always runs at its native 4x."""

    model_id = "realesrgan-x4"
    native_scale = 4
    loading_percent = 5

    def __init__(
        self,
        *args,
        tile_size: int = DEFAULT_TILE_SIZE,
        overlap: int = DEFAULT_OVERLAP,
        use_progress: bool = False,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.tile_size = int(tile_size)
        self.overlap = int(overlap)
        self.use_progress = use_progress

    def _on_tile(self, index: int, total: int) -> None:
        self._stage("inferring", int(index / total * 75.0 + 15.0))

    def run(self, image_fp: str | Path, scale: int = 4) -> str:
        """Upscale ``image_fp`` and return the saved PNG path.

        Unsupported scale values fall back to 4.
        """
        if scale not in SUPPORTED_SCALES:
            self.log.warning(f"unsupported scale {scale}; using {self.native_scale}")
            scale = self.native_scale
        self._stage("preprocessing", 10)
        img = open_image(image_fp)
        orig_w, orig_h = img.size
        rgb = to_rgb_array(img)

        # The registry lock is held across every tile of this image.
        with self.registry.session(self.model_id) as engine:
            upscaled = run_tiled(
                rgb,
                lambda tensor: engine.run([tensor])[0],
                model_scale=self.native_scale,
                tile_size=self.tile_size,
                overlap=self.overlap,
                on_tile=self._on_tile,
                use_progress=self.use_progress,
                logger=self.log,
            )

        self._stage("postprocessing", 92)
        result = Image.fromarray(upscaled)
        if scale != self.native_scale:
            result = resize(result, orig_w * scale, orig_h * scale, HIGH_QUALITY)
        output_fp = save_temp_image(result, self.out_dir)
        self._stage("complete", 100)
        return output_fp
