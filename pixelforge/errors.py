"""Error kinds surfaced by PixelForge operations."""


class PixelForgeError(Exception):
    """Base error carrying a stable kind tag plus a human-readable message."""

    kind = "General"
    prefix = ""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.prefix}{self.message}"

    def to_dict(self) -> dict[str, str]:
        """Return the user-visible payload for this error."""
        return {"kind": self.kind, "message": str(self)}


class FileReadError(PixelForgeError):
    kind = "FileRead"
    prefix = "Failed to read file: "


class ImageDecodeError(PixelForgeError):
    kind = "ImageDecode"
    prefix = "Failed to decode image: "


class UnsupportedFormatError(PixelForgeError):
    kind = "UnsupportedFormat"
    prefix = "Unsupported format: "


class SaveFailedError(PixelForgeError):
    kind = "SaveFailed"
    prefix = "Save failed: "


class ModelNotFoundError(PixelForgeError):
    kind = "ModelNotFound"
    prefix = "Model not found: "


class InferenceFailedError(PixelForgeError):
    kind = "InferenceFailed"
    prefix = "Inference failed: "


class DownloadFailedError(PixelForgeError):
    kind = "DownloadFailed"
    prefix = "Download failed: "


class GeneralError(PixelForgeError):
    kind = "General"


def ensure_pixelforge_error(error: Exception) -> PixelForgeError:
    """Coerce arbitrary exceptions into :class:`PixelForgeError` instances."""
    if isinstance(error, PixelForgeError):
        return error
    if isinstance(error, OSError):
        return FileReadError(str(error))
    return GeneralError(str(error))


__all__ = [
    "PixelForgeError",
    "FileReadError",
    "ImageDecodeError",
    "UnsupportedFormatError",
    "SaveFailedError",
    "ModelNotFoundError",
    "InferenceFailedError",
    "DownloadFailedError",
    "GeneralError",
    "ensure_pixelforge_error",
]
