"""Pillow adapters for image load, save and resampling."""

import logging, tempfile, uuid
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from pixelforge.errors import FileReadError, GeneralError, ImageDecodeError, SaveFailedError, UnsupportedFormatError


HIGH_QUALITY = Image.Resampling.LANCZOS
NEAREST = Image.Resampling.NEAREST
log = logging.getLogger(__name__)


def open_image(image_fp: str | Path) -> Image.Image:
    """Open and fully decode an image file, detecting the format from its content."""
    path = Path(image_fp).expanduser()
    try:
        with Image.open(path) as img:
            img.load()
            return img.copy()
    except UnidentifiedImageError as err:
        suffix = path.suffix.lower()
        if suffix and suffix not in Image.registered_extensions():
            raise UnsupportedFormatError(suffix.lstrip(".")) from err
        raise ImageDecodeError(f"{path}: {err}") from err
    except (OSError, ValueError) as err:
        if path.is_file():
            raise ImageDecodeError(f"{path}: {err}") from err
        raise FileReadError(f"{path}: {err}") from err


def resize(img: Image.Image, width: int, height: int, resample=HIGH_QUALITY) -> Image.Image:
    """Resize to exact dimensions, ignoring aspect ratio."""
    assert width > 0 and height > 0, f"resize target must be positive; got {(width, height)}"
    if img.size == (width, height):
        return img.copy()
    return img.resize((int(width), int(height)), resample=resample)


def to_rgb_array(img: Image.Image) -> np.ndarray:
    """Return the image as an HxWx3 uint8 array."""
    return np.asarray(img.convert("RGB"), dtype=np.uint8)


def mask_from_bytes(mask_data: bytes, mask_width: int, mask_height: int) -> Image.Image:
    """Rebuild a single-channel mask from raw row-major bytes."""
    if mask_width <= 0 or mask_height <= 0 or len(mask_data) != mask_width * mask_height:
        raise GeneralError("Invalid mask dimensions")
    return Image.frombytes("L", (int(mask_width), int(mask_height)), bytes(mask_data))


def save_temp_image(img: Image.Image, out_dir: str | Path | None = None) -> str:
    """Write ``img`` as a uniquely named PNG and return its path."""
    directory = Path(out_dir).expanduser() if out_dir is not None else Path(tempfile.gettempdir())
    output_fp = directory / f"pixelforge_{uuid.uuid4()}.png"
    try:
        directory.mkdir(parents=True, exist_ok=True)
        img.save(output_fp, format="PNG")
    except (OSError, ValueError) as err:
        raise SaveFailedError(str(err)) from err
    log.debug(f"saved output image to\n    {output_fp}")
    return str(output_fp)
