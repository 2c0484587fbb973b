"""Model provisioning: verified, streamed downloads of catalog weights."""

import asyncio, enum, logging, shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable
from urllib.error import HTTPError, URLError
from urllib.parse import unquote, urlparse
from urllib.request import Request, urlopen

from pixelforge.cache_paths import get_model_file_path
from pixelforge.checksums import verify_sha256
from pixelforge.errors import DownloadFailedError, GeneralError, ModelNotFoundError
from pixelforge.events import DOWNLOAD_COMPLETE, DOWNLOAD_PROGRESS, EventSink, emit
from pixelforge.model_registry import ModelDescriptor, list_models, resolve_model


ChunkCallback = Callable[[int, int | None], None]
log = logging.getLogger(__name__)


class DownloadState(enum.Enum):
    """Transient per-call provisioning states (never persisted)."""

    ABSENT = "absent"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    INSTALLED = "installed"
    FAILED = "failed"


@dataclass(frozen=True)
class ModelStatus:
    """Read-only projection of one catalog entry for display."""

    id: str
    name: str
    description: str
    size_bytes: int
    installed: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sizeBytes": self.size_bytes,
            "installed": self.installed,
        }


def _stream_response_to_destination(
    response,
    destination: Path,
    total_size: int | None = None,
    on_chunk: ChunkCallback | None = None,
    chunk_size: int = 1024 * 1024,
) -> int:
    """Stream a readable response to disk, reporting byte counts after each chunk."""
    downloaded = 0
    with destination.open("wb") as stream:
        chunk = response.read(chunk_size)
        while chunk:
            stream.write(chunk)
            downloaded += len(chunk)
            if on_chunk is not None:
                on_chunk(downloaded, total_size)
            chunk = response.read(chunk_size)
    log.debug(f"wrote {downloaded:,} bytes to\n    {destination}")
    return downloaded


class WeightsRetrievalBackend:
    """Abstract retrieval backend for fetching model bytes."""

    name = "base"

    def retrieve(self, source: str, destination: Path, on_chunk: ChunkCallback | None = None) -> Path:
        """Fetch model bytes from source into destination."""
        raise NotImplementedError


class HttpRetrievalBackend(WeightsRetrievalBackend):
    """Retrieve model weights from HTTP(S) sources."""

    name = "http"

    def retrieve(self, source: str, destination: Path, on_chunk: ChunkCallback | None = None) -> Path:
        """Stream bytes from an HTTP(S) URL to destination."""
        assert source, "source cannot be empty"
        assert isinstance(destination, Path), "destination must be a pathlib.Path"
        parsed = urlparse(source)
        if parsed.scheme.lower() not in {"http", "https"}:
            raise ValueError(f"unsupported scheme for http backend: {parsed.scheme}")

        destination.parent.mkdir(parents=True, exist_ok=True)
        log.info(f"downloading model from\n    {source}")
        try:
            with urlopen(Request(source)) as response:  # nosec B310
                status = getattr(response, "status", 200)
                if not 200 <= status < 300:
                    raise DownloadFailedError(f"HTTP {status}")
                total_bytes = response.headers.get("Content-Length")
                try:
                    total_size = int(total_bytes) if total_bytes else None
                except ValueError:
                    total_size = None
                _stream_response_to_destination(response, destination, total_size=total_size, on_chunk=on_chunk)
        except HTTPError as err:
            raise DownloadFailedError(f"HTTP {err.code}") from err
        except URLError as err:
            raise DownloadFailedError(f"failed to download model from '{source}' ({err.reason})") from err
        except OSError as err:
            raise DownloadFailedError(str(err)) from err
        return destination


class FileRetrievalBackend(WeightsRetrievalBackend):
    """Retrieve model weights from file paths or file:// URIs."""

    name = "file"

    def retrieve(self, source: str, destination: Path, on_chunk: ChunkCallback | None = None) -> Path:
        """Copy model bytes from a local path into destination."""
        parsed = urlparse(source)
        if parsed.scheme.lower() in {"", "file"}:
            source_fp = (
                Path(f"//{parsed.netloc}{unquote(parsed.path)}")
                if parsed.netloc
                else Path(unquote(parsed.path) or source)
            )
        else:
            raise ValueError(f"unsupported scheme for file backend: {parsed.scheme}")
        source_fp = source_fp.expanduser().resolve()
        if not source_fp.exists():
            raise DownloadFailedError(f"source model not found: {source_fp}")

        destination.parent.mkdir(parents=True, exist_ok=True)
        if on_chunk is None:
            shutil.copy2(source_fp, destination)
            return destination
        with source_fp.open("rb") as stream:
            _stream_response_to_destination(
                stream, destination, total_size=source_fp.stat().st_size, on_chunk=on_chunk
            )
        return destination


def get_retrieval_backend(source_url: str, backend_name: str | None = None) -> WeightsRetrievalBackend:
    """Select a retrieval backend from explicit name or URL scheme."""
    if backend_name == "http":
        return HttpRetrievalBackend()
    if backend_name == "file":
        return FileRetrievalBackend()
    if backend_name is not None:
        raise ValueError(f"unsupported backend '{backend_name}'")

    # Derive backend selection from URI scheme when no override is provided.
    scheme = urlparse(source_url).scheme.lower()
    if scheme in {"http", "https"}:
        return HttpRetrievalBackend()
    if scheme in {"", "file"}:
        return FileRetrievalBackend()
    raise ValueError(f"unable to select backend for URL scheme '{scheme}'")


def _local_path(model: ModelDescriptor, models_dir: str | Path | None) -> Path:
    return get_model_file_path(model.filename, models_dir=models_dir)


def get_installed_model_path(
    model_id: str,
    models_dir: str | Path | None = None,
    manifest_fp: str | Path | None = None,
) -> Path:
    """Return the local weight file for an installed model.

    Raises ModelNotFoundError for unknown ids and for known ids whose file has
    not been downloaded yet.
    """
    model = resolve_model(model_id, manifest_fp=manifest_fp)
    model_fp = _local_path(model, models_dir)
    if not model_fp.exists():
        raise ModelNotFoundError(f"Model '{model.name}' is not downloaded. Download it first.")
    return model_fp


def get_models_status(
    models_dir: str | Path | None = None,
    manifest_fp: str | Path | None = None,
) -> list[ModelStatus]:
    """Project every catalog entry to its install status (file presence only)."""
    return [
        ModelStatus(
            id=model.id,
            name=model.name,
            description=model.description,
            size_bytes=model.size_bytes,
            installed=_local_path(model, models_dir).exists(),
        )
        for model in list_models(manifest_fp)
    ]


def fetch_model(
    model_id: str,
    models_dir: str | Path | None = None,
    manifest_fp: str | Path | None = None,
    backend_name: str | None = None,
    sink: EventSink | None = None,
    logger=None,
) -> Path:
    """
    Ensure a verified local weight file exists for ``model_id``.

    A cached file is accepted without network activity when its digest matches
    the configured hash, or when no hash is configured. A stale cached file is
    deleted and downloaded again once. A freshly downloaded file that fails
    verification is deleted and reported as DownloadFailedError.

    Parameters
    ----------
    model_id:
        Catalog id of the model to provision.
    models_dir:
        Optional override for the installed-models directory.
    manifest_fp:
        Optional alternate manifest.
    backend_name:
        Optional retrieval backend override (``http`` or ``file``).
    sink:
        Optional progress sink receiving download events.
    logger:
        Optional logger instance.

    Returns
    -------
    Path
        Path to the installed, verified weight file.
    """
    log = logger or logging.getLogger(__name__)
    model = resolve_model(model_id, manifest_fp=manifest_fp)
    model_fp = _local_path(model, models_dir)
    part_fp = model_fp.with_suffix(f"{model_fp.suffix}.part")
    state = DownloadState.ABSENT

    # Reuse an existing file when its hash matches, or when there is no hash to check.
    if model_fp.exists():
        if model.sha256 is None:
            log.debug(f"'{model.id}' present and has no configured hash; trusting\n    {model_fp}")
            return model_fp
        if verify_sha256(model_fp, model.sha256):
            log.debug(f"'{model.id}' present and verified\n    {model_fp}")
            return model_fp
        log.warning(f"cached '{model.id}' failed checksum verification; removing and downloading again")
        model_fp.unlink()

    def _on_chunk(downloaded: int, total_size: int | None) -> None:
        total = total_size or model.size_bytes
        emit(
            sink,
            DOWNLOAD_PROGRESS,
            {
                "modelId": model.id,
                "percent": int(downloaded / total * 100) if total else 0,
                "downloadedBytes": downloaded,
                "totalBytes": total,
            },
        )

    # Download to a temporary file first and atomically replace on success.
    if part_fp.exists():
        part_fp.unlink()
    backend = get_retrieval_backend(model.url, backend_name=backend_name)
    try:
        state = DownloadState.DOWNLOADING
        try:
            backend.retrieve(model.url, part_fp, on_chunk=_on_chunk)
        except OSError as err:
            raise DownloadFailedError(str(err)) from err

        state = DownloadState.VERIFYING
        if model.sha256 is not None and not verify_sha256(part_fp, model.sha256):
            raise DownloadFailedError("SHA-256 checksum mismatch, download corrupted")
        part_fp.replace(model_fp)
        state = DownloadState.INSTALLED
    except DownloadFailedError:
        state = DownloadState.FAILED
        raise
    finally:
        if part_fp.exists():
            part_fp.unlink()
        log.debug(f"'{model.id}' provisioning finished in state {state.value}")

    log.info(f"installed model '{model.id}' to\n    {model_fp}")
    emit(sink, DOWNLOAD_COMPLETE, {"modelId": model.id})
    return model_fp


async def fetch_model_async(model_id: str, **kwargs) -> Path:
    """Run :func:`fetch_model` in a worker thread so the event loop is not blocked."""
    return await asyncio.to_thread(fetch_model, model_id, **kwargs)


def delete_model(
    model_id: str,
    models_dir: str | Path | None = None,
    manifest_fp: str | Path | None = None,
) -> None:
    """Remove an installed model file; an absent file is not an error."""
    model = resolve_model(model_id, manifest_fp=manifest_fp)
    model_fp = _local_path(model, models_dir)
    try:
        model_fp.unlink(missing_ok=True)
    except OSError as err:
        raise GeneralError(str(err)) from err
    log.info(f"removed model '{model.id}' from\n    {model_fp}")
