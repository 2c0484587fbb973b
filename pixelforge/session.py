"""Lazily-built, lock-guarded cache of inference engines keyed by model id."""

import logging, threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, TypeVar

from pixelforge.engine.base import EngineBase
from pixelforge.errors import GeneralError, InferenceFailedError, PixelForgeError


EngineFactory = Callable[[Path], EngineBase]
PathResolver = Callable[[str], Path]
T = TypeVar("T")
log = logging.getLogger(__name__)


def _default_engine_factory(model_fp: Path) -> EngineBase:
    from pixelforge.engine.ort import EngineORT

    return EngineORT(model_fp)


class SessionRegistry:
    """
    Mapping from model id to a live engine, guarded by one lock for all models.

    Engines are built on first use and kept for the life of the registry. The
    lock is held across a whole ``with_session`` call, so at most one inference
    runs at a time across every model. An unexpected exception escaping while
    the lock is held poisons the registry: later calls raise GeneralError.
    """

    def __init__(
        self,
        path_resolver: PathResolver,
        engine_factory: EngineFactory | None = None,
        logger=None,
    ):
        self._resolve_path = path_resolver
        self._engine_factory = engine_factory or _default_engine_factory
        self._sessions: dict[str, EngineBase] = {}
        self._lock = threading.Lock()
        self._poisoned = False
        self.log = logger or log

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock:
            if self._poisoned:
                raise GeneralError("Session lock poisoned")
            try:
                yield
            except PixelForgeError:
                raise
            except Exception:
                self._poisoned = True
                self.log.error("unexpected error while holding the session lock; registry poisoned")
                raise

    def __contains__(self, model_id: str) -> bool:
        with self._lock:
            return model_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def ensure_session(self, model_id: str) -> None:
        """Build the engine for ``model_id`` unless one already exists.

        Raises ModelNotFoundError when the id is unknown or its file is absent,
        and InferenceFailedError when the engine cannot be constructed.
        """
        assert model_id, "model_id cannot be empty"
        model_fp = self._resolve_path(model_id)
        with self._locked():
            if model_id in self._sessions:
                return
            self.log.debug(f"building session for '{model_id}' from\n    {model_fp}")
            try:
                engine = self._engine_factory(model_fp)
            except PixelForgeError:
                raise
            except Exception as err:
                raise InferenceFailedError(f"unable to build session for '{model_id}': {err}") from err
            self._sessions[model_id] = engine
        self.log.info(f"session ready for '{model_id}'")

    def with_session(self, model_id: str, fn: Callable[[EngineBase], T]) -> T:
        """Call ``fn`` with exclusive access to the engine for ``model_id``."""
        with self.session(model_id) as engine:
            return fn(engine)

    @contextmanager
    def session(self, model_id: str) -> Iterator[EngineBase]:
        """Context-managed exclusive access to an already-built engine."""
        with self._locked():
            engine = self._sessions.get(model_id)
            if engine is None:
                raise InferenceFailedError(f"{model_id} session not found")
            yield engine
