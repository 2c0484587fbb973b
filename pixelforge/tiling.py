"""Overlapping tile layout, seam-blended accumulation, and tiled inference."""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

import numpy as np
from tqdm import tqdm

from pixelforge.errors import InferenceFailedError
from pixelforge.pipeline import as_planar, encode_unit, to_uint8


DEFAULT_TILE_SIZE = 128
DEFAULT_OVERLAP = 16
MIN_BLEND_WEIGHT = 1e-3
log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tile:
    """Source-image rectangle processed by one inference call."""

    x: int
    y: int
    width: int
    height: int


def _next_start(start: int, extent: int, total: int, tile_size: int, step: int) -> int | None:
    """Advance one axis; None ends the walk, the last start is clamped flush to the edge."""
    if start + extent >= total:
        return None
    start += step
    if start + tile_size > total:
        start = max(total - tile_size, 0)
    return start


def compute_tiles(image_width: int, image_height: int, tile_size: int, overlap: int) -> list[Tile]:
    """
    Partition an image into overlapping tiles that exactly cover it.

    Rows and columns advance by ``max(1, tile_size - overlap)``; the last tile
    of a row (and the last row) is shifted back so it ends flush with the edge.
    No tile exceeds the image bounds.
    """
    assert image_width > 0 and image_height > 0, f"image size must be > 0; got {(image_width, image_height)}"
    assert tile_size > 0, f"tile_size must be > 0; got {tile_size}"
    assert 0 <= overlap < tile_size, f"overlap must be in [0, tile_size); got overlap={overlap}, tile_size={tile_size}"
    step = max(1, tile_size - overlap)

    tiles: list[Tile] = []
    y: int | None = 0
    while y is not None:
        height = min(tile_size, image_height - y)
        x: int | None = 0
        while x is not None:
            width = min(tile_size, image_width - x)
            tiles.append(Tile(x=x, y=y, width=width, height=height))
            x = _next_start(x, width, image_width, tile_size, step)
        y = _next_start(y, height, image_height, tile_size, step)
    return tiles


def build_axis_weights(length: int, overlap: int) -> np.ndarray:
    """Build 1D linear ramp weights: 0->1 over ``overlap``, flat 1, then 1->0.

    Returns uniform ones when there is no room for both ramps
    (``length <= 2 * overlap``) or when ``overlap`` is 0.
    """
    assert length > 0, f"length must be > 0; got {length}"
    assert overlap >= 0, f"overlap must be >= 0; got {overlap}"
    weights = np.ones(length, dtype=np.float32)
    if overlap == 0 or length <= 2 * overlap:
        return weights
    index = np.arange(length, dtype=np.float32)
    weights[:overlap] = index[:overlap] / overlap
    weights[length - overlap:] = (length - 1 - index[length - overlap:]) / overlap
    return weights


def build_blend_weights(height: int, width: int, overlap: int) -> np.ndarray:
    """Combine axis ramps into a 2D weight map floored at ``MIN_BLEND_WEIGHT``."""
    weights_2d = np.outer(build_axis_weights(height, overlap), build_axis_weights(width, overlap))
    return np.maximum(weights_2d, np.float32(MIN_BLEND_WEIGHT)).astype(np.float32)


class AccumulationBuffer:
    """Weighted sum and weight arrays sized to the full output image."""

    def __init__(self, height: int, width: int, channels: int = 3):
        assert height > 0 and width > 0, f"buffer size must be > 0; got {(height, width)}"
        self.height = int(height)
        self.width = int(width)
        self.sum = np.zeros((self.height, self.width, channels), dtype=np.float32)
        self.weight = np.zeros((self.height, self.width, channels), dtype=np.float32)

    def add(self, values: np.ndarray, x: int, y: int, weights: np.ndarray) -> None:
        """Accumulate ``values * weights`` at output origin ``(x, y)``, clipped to the buffer."""
        assert values.shape[:2] == weights.shape, f"values {values.shape} and weights {weights.shape} differ"
        h = min(values.shape[0], self.height - y)
        w = min(values.shape[1], self.width - x)
        if h <= 0 or w <= 0:
            return
        tile_weights = weights[:h, :w, np.newaxis]
        self.sum[y:y + h, x:x + w] += values[:h, :w] * tile_weights
        self.weight[y:y + h, x:x + w] += tile_weights

    def finalize(self) -> np.ndarray:
        """Return ``sum / weight`` rounded to uint8; uncovered pixels are 0."""
        out = np.zeros_like(self.sum)
        covered = self.weight > 0
        np.divide(self.sum, self.weight, out=out, where=covered)
        return to_uint8(out)


def iter_tiles(tiles: list[Tile], *, use_progress: bool, desc: str = "tiled inference") -> Iterable[tuple[int, Tile]]:
    """Yield indexed tiles with optional progress rendering."""
    indexed = enumerate(tiles)
    if use_progress:
        return tqdm(indexed, desc=desc, total=len(tiles), unit="tile")
    return indexed


def run_tiled(
    rgb: np.ndarray,
    infer: Callable[[np.ndarray], np.ndarray],
    *,
    model_scale: int,
    tile_size: int = DEFAULT_TILE_SIZE,
    overlap: int = DEFAULT_OVERLAP,
    on_tile: Callable[[int, int], None] | None = None,
    use_progress: bool = False,
    logger=None,
) -> np.ndarray:
    """
    Run ``infer`` over overlapping tiles and blend the results into one image.

    Parameters
    ----------
    rgb:
        Source pixels, HxWx3 uint8.
    infer:
        Maps one ``(1, 3, h, w)`` tensor in [0, 1] to a ``(1, 3, h*scale, w*scale)`` output.
    model_scale:
        Native output scale of the model.
    tile_size, overlap:
        Tile edge and overlap in source pixels.
    on_tile:
        Optional callback ``(tile_index, tile_count)`` invoked before each tile.
    use_progress:
        Render a tqdm progress bar.
    logger:
        Optional logger instance.

    Returns
    -------
    np.ndarray
        Blended HxWx3 uint8 image at ``model_scale`` times the source size.
        Any tile failure raises InferenceFailedError and no partial output is returned.
    """
    log = logger or logging.getLogger(__name__)
    assert rgb.ndim == 3 and rgb.shape[2] == 3, f"expected HxWx3 pixels; got {rgb.shape}"
    assert model_scale > 0, f"model_scale must be > 0; got {model_scale}"
    image_h, image_w = rgb.shape[:2]
    tiles = compute_tiles(image_w, image_h, tile_size, overlap)
    overlap_scaled = overlap * model_scale
    buffer = AccumulationBuffer(image_h * model_scale, image_w * model_scale)
    log.info(
        f"tiled inference over {image_w}x{image_h} px: {len(tiles)} tile(s), "
        f"tile_size={tile_size}, overlap={overlap}, scale={model_scale}"
    )

    for index, tile in iter_tiles(tiles, use_progress=use_progress):
        if on_tile is not None:
            on_tile(index, len(tiles))
        tile_rgb = rgb[tile.y:tile.y + tile.height, tile.x:tile.x + tile.width]
        output = infer(encode_unit(tile_rgb))
        out_h = tile.height * model_scale
        out_w = tile.width * model_scale
        try:
            planar = as_planar(output, 3, out_h, out_w)
        except InferenceFailedError as err:
            raise InferenceFailedError(f"tile {index} at {(tile.x, tile.y)}: {err.message}") from err
        values = np.clip(planar, 0.0, 1.0).transpose(1, 2, 0) * np.float32(255.0)
        buffer.add(values, tile.x * model_scale, tile.y * model_scale, build_blend_weights(out_h, out_w, overlap_scaled))

    return buffer.finalize()
