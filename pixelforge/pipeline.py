"""Tensor encode/decode routines shared by the per-family model workers.

Tensors are float32, batch 1, planar ``(1, C, H, W)``. Decoders validate the
element count they receive and raise InferenceFailedError on a mismatch.
"""

import numpy as np
from PIL import Image

from pixelforge.errors import InferenceFailedError
from pixelforge.imaging import HIGH_QUALITY, NEAREST, resize, to_rgb_array


IMAGENET_MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
IMAGENET_STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)
MASK_THRESHOLD = 128


def to_uint8(values: np.ndarray) -> np.ndarray:
    """Round half away from zero and clamp to [0, 255] uint8."""
    return np.clip(np.floor(np.asarray(values, dtype=np.float32) + 0.5), 0, 255).astype(np.uint8)


def to_planar(rgb_hwc: np.ndarray) -> np.ndarray:
    """Convert an HxWxC array to a ``(1, C, H, W)`` float32 tensor."""
    assert rgb_hwc.ndim == 3, f"expected HxWxC array; got {rgb_hwc.shape}"
    return np.ascontiguousarray(rgb_hwc.transpose(2, 0, 1)[np.newaxis], dtype=np.float32)


def as_planar(tensor: np.ndarray, channels: int, height: int, width: int) -> np.ndarray:
    """Reshape a model output to ``(C, H, W)`` or raise InferenceFailedError."""
    flat = np.asarray(tensor, dtype=np.float32).reshape(-1)
    expected = channels * height * width
    if flat.size != expected:
        raise InferenceFailedError(
            f"output tensor has {flat.size} elements; expected {expected} for {(channels, height, width)}"
        )
    return flat.reshape(channels, height, width)


# ImageNet normalisation (segmentation, classification) ----------------------

def encode_imagenet(img: Image.Image, size: int) -> np.ndarray:
    """Resize to ``size``x``size`` and apply per-channel ImageNet mean/std."""
    rgb = to_rgb_array(resize(img, size, size, HIGH_QUALITY)).astype(np.float32)
    normalized = (rgb / 255.0 - IMAGENET_MEAN) / IMAGENET_STD
    return to_planar(normalized)


def decode_imagenet(tensor: np.ndarray) -> np.ndarray:
    """Invert :func:`encode_imagenet` normalisation back to HxWx3 uint8 pixels."""
    assert tensor.ndim == 4 and tensor.shape[1] == 3, f"expected (1, 3, H, W); got {tensor.shape}"
    hwc = tensor[0].transpose(1, 2, 0)
    pixels = (hwc * IMAGENET_STD + IMAGENET_MEAN) * 255.0
    return to_uint8(pixels)


def decode_mask(tensor: np.ndarray, size: int, out_size: tuple[int, int]) -> Image.Image:
    """Min-max normalise a ``size``x``size`` mask to [0, 255] and resize to ``out_size``."""
    mask = as_planar(tensor, 1, size, size)[0]
    min_val = float(mask.min())
    max_val = float(mask.max())
    value_range = max(max_val - min_val, float(np.finfo(np.float32).eps))
    normalized = np.clip((mask - min_val) / value_range * 255.0, 0.0, 255.0).astype(np.uint8)
    return resize(Image.fromarray(normalized), out_size[0], out_size[1], HIGH_QUALITY)


def apply_alpha(img: Image.Image, mask: Image.Image) -> Image.Image:
    """Return ``img`` as RGBA with ``mask`` written into the alpha channel."""
    assert img.size == mask.size, f"mask size {mask.size} must match image size {img.size}"
    rgba = img.convert("RGBA")
    rgba.putalpha(mask)
    return rgba


def softmax(logits: np.ndarray) -> np.ndarray:
    """Numerically stable softmax over a flat logit vector."""
    values = np.asarray(logits, dtype=np.float32).reshape(-1)
    if values.size == 0:
        raise InferenceFailedError("classification output is empty")
    exps = np.exp(values - values.max())
    return exps / exps.sum()


def top_k(probabilities: np.ndarray, labels: list[str], k: int = 5) -> list[tuple[str, float]]:
    """Return ``(label, confidence)`` pairs for the ``k`` most probable classes."""
    order = np.argsort(-probabilities, kind="stable")[:k]
    return [
        (labels[index] if index < len(labels) else f"class_{index}", float(probabilities[index]))
        for index in order
    ]


# Raw pixel scaling (style transfer, inpainting, super-resolution) -----------

def encode_raw(rgb_hwc: np.ndarray, scale: float = 1.0) -> np.ndarray:
    """Encode uint8 pixels as planar float32 multiplied by ``scale``."""
    return to_planar(rgb_hwc.astype(np.float32) * np.float32(scale))


def encode_unit(rgb_hwc: np.ndarray) -> np.ndarray:
    """Encode uint8 pixels as planar float32 in [0, 1] (``pixel / 255``)."""
    return to_planar(rgb_hwc.astype(np.float32) / np.float32(255.0))


def decode_rgb(tensor: np.ndarray, height: int, width: int) -> np.ndarray:
    """Clamp a planar 3-channel output to [0, 255] and truncate to HxWx3 uint8."""
    planar = as_planar(tensor, 3, height, width)
    return np.clip(planar, 0.0, 255.0).astype(np.uint8).transpose(1, 2, 0)


def blend(original: np.ndarray, styled: np.ndarray, strength: float) -> np.ndarray:
    """Linear blend ``original*(1-s) + styled*s`` with ``s`` clamped to [0, 1]."""
    assert original.shape == styled.shape, f"shape mismatch {original.shape} vs {styled.shape}"
    s = float(np.clip(strength, 0.0, 1.0))
    mixed = original.astype(np.float32) * (1.0 - s) + styled.astype(np.float32) * s
    return to_uint8(mixed)


def cap_longer_side(img: Image.Image, max_dim: int) -> tuple[Image.Image, bool]:
    """Downscale so neither side exceeds ``max_dim``; return the image and whether it changed."""
    width, height = img.size
    if width <= max_dim and height <= max_dim:
        return img, False
    scale = max_dim / max(width, height)
    new_w = max(1, int(width * scale))
    new_h = max(1, int(height * scale))
    return resize(img, new_w, new_h, HIGH_QUALITY), True


def binarize_mask(mask: Image.Image, size: int) -> np.ndarray:
    """Resize a mask (nearest) to ``size``x``size`` and map ``> 128`` to 1.0, else 0.0."""
    resized = np.asarray(resize(mask.convert("L"), size, size, NEAREST), dtype=np.uint8)
    binary = (resized > MASK_THRESHOLD).astype(np.float32)
    return binary[np.newaxis, np.newaxis]


def composite(original: np.ndarray, inpainted: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """Take ``inpainted`` pixels where ``mask > 128`` and ``original`` elsewhere."""
    assert original.shape == inpainted.shape, f"shape mismatch {original.shape} vs {inpainted.shape}"
    assert mask.shape == original.shape[:2], f"mask shape {mask.shape} must match {original.shape[:2]}"
    return np.where((mask > MASK_THRESHOLD)[..., np.newaxis], inpainted, original).astype(np.uint8)
