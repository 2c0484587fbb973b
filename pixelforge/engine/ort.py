"""ONNX Runtime engine implementation for PixelForge."""

import logging, time
from pathlib import Path

import numpy as np
import onnxruntime as ort

from pixelforge.engine.base import EngineBase
from pixelforge.errors import InferenceFailedError, ModelNotFoundError


DEFAULT_INTRA_OP_THREADS = 4


class EngineORT(EngineBase):
    """ONNX Runtime session with a fixed thread-pool width and full graph optimisation."""

    def __init__(
        self,
        model_fp: str | Path,
        providers: tuple[str, ...] = ("CPUExecutionProvider",),
        intra_op_threads: int = DEFAULT_INTRA_OP_THREADS,
        logger=None,
    ):
        """Initialize and load an ORT session."""
        self._model_fp = Path(model_fp).expanduser().resolve()
        if not self._model_fp.exists():
            raise ModelNotFoundError(f"model file does not exist: {self._model_fp}")
        assert providers, "providers cannot be empty"
        assert intra_op_threads > 0, f"intra_op_threads must be > 0; got {intra_op_threads}"
        self.providers = tuple(providers)
        self.intra_op_threads = int(intra_op_threads)
        self.log = logger or logging.getLogger(__name__)
        self.session: ort.InferenceSession | None = None
        self.load()

    def model_path(self) -> Path:
        """Return the model path used by this engine."""
        return self._model_fp

    def load(self) -> None:
        """Build the ORT session; any construction failure is an InferenceFailedError."""
        self.log.debug(f"loading ORT session from\n    {self._model_fp}")
        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        options.intra_op_num_threads = self.intra_op_threads
        try:
            self.session = ort.InferenceSession(
                self._model_fp.as_posix(), sess_options=options, providers=list(self.providers)
            )
        except Exception as err:
            raise InferenceFailedError(f"unable to load '{self._model_fp.name}': {err}") from err
        self.log.info(
            f"loaded ORT model '{self._model_fp.name}' with providers={self.session.get_providers()} "
            f"and intra_op_threads={self.intra_op_threads}"
        )

    def _build_feed_dict(self, inputs: list[np.ndarray]) -> dict[str, np.ndarray]:
        """Bind arrays to graph inputs and validate their static dimensions."""
        assert self.session is not None, "session must be loaded before inference"
        input_meta_l = list(self.session.get_inputs())
        if len(inputs) != len(input_meta_l):
            raise InferenceFailedError(
                f"model '{self._model_fp.name}' expects {len(input_meta_l)} input(s), got {len(inputs)}"
            )

        feed_dict: dict[str, np.ndarray] = {}
        for input_meta, input_ar in zip(input_meta_l, inputs):
            if len(input_ar.shape) != len(input_meta.shape):
                raise InferenceFailedError(
                    f"input {input_meta.name} expects rank {len(input_meta.shape)}, got shape {input_ar.shape}"
                )
            for axis, (got, exp) in enumerate(zip(input_ar.shape, input_meta.shape)):
                if isinstance(exp, int) and exp > 0 and got != exp:
                    raise InferenceFailedError(
                        f"input {input_meta.name} axis {axis} expects {exp}, got {got}; "
                        f"expected shape={input_meta.shape}, got={input_ar.shape}"
                    )
            feed_dict[input_meta.name] = np.ascontiguousarray(input_ar, dtype=np.float32)
        return feed_dict

    def run(self, inputs: list[np.ndarray]) -> list[np.ndarray]:
        """Run one forward pass and return every graph output as float32."""
        assert self.session is not None, "session must be loaded before inference"
        start = time.perf_counter()
        feed_dict = self._build_feed_dict(inputs)
        try:
            outputs = self.session.run(None, feed_dict)
        except Exception as err:
            raise InferenceFailedError(str(err)) from err
        if not outputs:
            raise InferenceFailedError(f"model '{self._model_fp.name}' returned zero outputs")
        self.log.debug(
            f"ORT run on '{self._model_fp.name}' complete in {time.perf_counter() - start:.3f}s; "
            f"output shapes={[np.shape(output) for output in outputs]}"
        )
        return [np.asarray(output, dtype=np.float32) for output in outputs]
