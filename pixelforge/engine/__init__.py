"""Engine package exports."""

from pixelforge.engine.base import EngineBase
from pixelforge.engine.ort import EngineORT
from pixelforge.engine.providers import get_onnxruntime_info, get_pillow_info


__all__ = ["EngineBase", "EngineORT", "get_onnxruntime_info", "get_pillow_info"]
