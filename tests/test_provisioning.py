"""Tests for model provisioning: verified downloads, status and deletion."""

import asyncio, hashlib, io, json
from email.message import Message
from pathlib import Path
from urllib.error import HTTPError

import pytest

from pixelforge.errors import DownloadFailedError, ModelNotFoundError
from pixelforge.events import DOWNLOAD_COMPLETE, DOWNLOAD_PROGRESS
from pixelforge.provisioning import (
    FileRetrievalBackend,
    HttpRetrievalBackend,
    delete_model,
    fetch_model,
    fetch_model_async,
    get_installed_model_path,
    get_models_status,
    get_retrieval_backend,
)


pytestmark = pytest.mark.unit

REMOTE_URL = "https://models.example.test/weights/remote.onnx"


class _FakeResponse(io.BytesIO):
    """Minimal stand-in for the object returned by urlopen."""

    def __init__(self, payload: bytes, status: int = 200, content_length: bool = True):
        super().__init__(payload)
        self.status = status
        self.headers = Message()
        if content_length:
            self.headers["Content-Length"] = str(len(payload))


def _write_remote_manifest(tmp_path: Path, payload: bytes, sha256: str | None) -> Path:
    manifest = {
        "models": {
            "m-remote": {
                "name": "Remote Model",
                "description": "Served over HTTP.",
                "family": "inpainting",
                "url": REMOTE_URL,
                "filename": "remote.onnx",
                "size_bytes": len(payload),
                "sha256": sha256,
            }
        }
    }
    manifest_fp = tmp_path / "remote_models.json"
    manifest_fp.write_text(json.dumps(manifest), encoding="utf-8")
    return manifest_fp


@pytest.mark.parametrize(
    "source_url, backend_name, expected_type",
    [
        pytest.param("https://host/model.onnx", None, HttpRetrievalBackend, id="https_scheme"),
        pytest.param("file:///tmp/model.onnx", None, FileRetrievalBackend, id="file_scheme"),
        pytest.param("/tmp/model.onnx", None, FileRetrievalBackend, id="bare_path"),
        pytest.param("https://host/model.onnx", "file", FileRetrievalBackend, id="explicit_override"),
    ],
)
def test_get_retrieval_backend_selection(source_url: str, backend_name: str | None, expected_type):
    """Backends are chosen from an explicit name or the URL scheme."""
    assert isinstance(get_retrieval_backend(source_url, backend_name), expected_type)


def test_get_retrieval_backend_rejects_unknown_name():
    """An unknown backend name is rejected."""
    with pytest.raises(ValueError):
        get_retrieval_backend("https://host/model.onnx", "ftp")


def test_fetch_model_installs_and_reports_progress(models_dir: Path, models_manifest_fp: Path, sink, logger):
    """A hashed model is streamed, verified and installed with progress events."""
    model_fp = fetch_model("m-hashed", models_dir=models_dir, manifest_fp=models_manifest_fp, sink=sink, logger=logger)

    assert model_fp == models_dir.resolve() / "hashed.onnx"
    assert model_fp.read_bytes() == b"hashed-test-model"
    assert not model_fp.with_suffix(".onnx.part").exists()

    progress = sink.named(DOWNLOAD_PROGRESS)
    assert progress, "expected at least one progress event"
    assert progress[-1]["percent"] == 100
    assert progress[-1]["downloadedBytes"] == progress[-1]["totalBytes"] == len(b"hashed-test-model")
    assert all(event["modelId"] == "m-hashed" for event in progress)
    assert sink.named(DOWNLOAD_COMPLETE) == [{"modelId": "m-hashed"}]


def test_fetch_model_trusts_present_file_without_digest(
    models_dir: Path, models_manifest_fp: Path, sink, monkeypatch: pytest.MonkeyPatch
):
    """An existing file is accepted as-is, without hashing, when no digest is configured."""

    def fail_hashing(*args, **kwargs):
        raise AssertionError("hash computed for a model without a digest")

    monkeypatch.setattr("pixelforge.provisioning.verify_sha256", fail_hashing)
    monkeypatch.setattr("pixelforge.checksums.compute_sha256", fail_hashing)
    (models_dir / "plain.onnx").write_bytes(b"anything at all")
    model_fp = fetch_model("m-plain", models_dir=models_dir, manifest_fp=models_manifest_fp, sink=sink)
    assert model_fp.read_bytes() == b"anything at all"
    assert sink.events == []


def test_fetch_model_replaces_stale_file(models_dir: Path, models_manifest_fp: Path):
    """A present file that fails verification is deleted and downloaded again."""
    (models_dir / "hashed.onnx").write_bytes(b"stale bytes")
    model_fp = fetch_model("m-hashed", models_dir=models_dir, manifest_fp=models_manifest_fp)
    assert model_fp.read_bytes() == b"hashed-test-model"


def test_fetch_model_skips_download_when_verified(models_dir: Path, models_manifest_fp: Path, tmp_path: Path, sink):
    """A verified file needs no network or source access."""
    fetch_model("m-hashed", models_dir=models_dir, manifest_fp=models_manifest_fp)
    (tmp_path / "source_hashed.onnx").unlink()
    model_fp = fetch_model("m-hashed", models_dir=models_dir, manifest_fp=models_manifest_fp, sink=sink)
    assert model_fp.exists()
    assert sink.events == []


def test_fetch_model_corrupted_download_is_removed(tmp_path: Path, models_dir: Path):
    """A download that fails verification raises and leaves nothing installed."""
    source_fp = tmp_path / "source.onnx"
    source_fp.write_bytes(b"corrupted payload")
    manifest = {
        "models": {
            "m-bad": {
                "name": "Bad Model",
                "family": "segmentation",
                "url": source_fp.as_uri(),
                "filename": "bad.onnx",
                "size_bytes": 17,
                "sha256": "0" * 64,
            }
        }
    }
    manifest_fp = tmp_path / "models_bad.json"
    manifest_fp.write_text(json.dumps(manifest), encoding="utf-8")

    with pytest.raises(DownloadFailedError) as exc_info:
        fetch_model("m-bad", models_dir=models_dir, manifest_fp=manifest_fp)
    assert "SHA-256 checksum mismatch" in str(exc_info.value)
    assert not (models_dir / "bad.onnx").exists()
    assert not (models_dir / "bad.onnx.part").exists()


def test_fetch_model_missing_file_source(tmp_path: Path, models_dir: Path, models_manifest_fp: Path):
    """A vanished file:// source is a download failure."""
    (tmp_path / "source_plain.onnx").unlink()
    with pytest.raises(DownloadFailedError):
        fetch_model("m-plain", models_dir=models_dir, manifest_fp=models_manifest_fp)


def test_fetch_model_over_http(tmp_path: Path, models_dir: Path, sink, monkeypatch: pytest.MonkeyPatch):
    """HTTP downloads use Content-Length for progress totals."""
    payload = b"x" * 5000
    manifest_fp = _write_remote_manifest(tmp_path, payload, hashlib.sha256(payload).hexdigest())
    requested = []

    def fake_urlopen(request):
        requested.append(request.full_url)
        return _FakeResponse(payload)

    monkeypatch.setattr("pixelforge.provisioning.urlopen", fake_urlopen)
    model_fp = fetch_model("m-remote", models_dir=models_dir, manifest_fp=manifest_fp, sink=sink)

    assert requested == [REMOTE_URL]
    assert model_fp.read_bytes() == payload
    assert sink.named(DOWNLOAD_PROGRESS)[-1]["totalBytes"] == 5000


@pytest.mark.parametrize(
    "failure",
    [
        pytest.param("http_error", id="http_error_raised"),
        pytest.param("bad_status", id="non_success_status"),
    ],
)
def test_fetch_model_http_failure(tmp_path: Path, models_dir: Path, monkeypatch: pytest.MonkeyPatch, failure: str):
    """Non-success HTTP responses become DownloadFailed and install nothing."""
    manifest_fp = _write_remote_manifest(tmp_path, b"unused", None)

    def fake_urlopen(request):
        if failure == "http_error":
            raise HTTPError(request.full_url, 404, "Not Found", Message(), None)
        return _FakeResponse(b"not found page", status=404)

    monkeypatch.setattr("pixelforge.provisioning.urlopen", fake_urlopen)
    with pytest.raises(DownloadFailedError) as exc_info:
        fetch_model("m-remote", models_dir=models_dir, manifest_fp=manifest_fp)
    assert exc_info.value.kind == "DownloadFailed"
    assert "HTTP 404" in str(exc_info.value)
    assert not (models_dir / "remote.onnx").exists()


def test_fetch_model_unknown_id(models_dir: Path, models_manifest_fp: Path):
    """Unknown ids are rejected before any download."""
    with pytest.raises(ModelNotFoundError):
        fetch_model("nope", models_dir=models_dir, manifest_fp=models_manifest_fp)


def test_fetch_model_async(models_dir: Path, models_manifest_fp: Path):
    """The async wrapper provisions the same file."""
    model_fp = asyncio.run(fetch_model_async("m-plain", models_dir=models_dir, manifest_fp=models_manifest_fp))
    assert model_fp.read_bytes() == b"plain-test-model"


def test_get_models_status_reflects_file_presence(models_dir: Path, models_manifest_fp: Path):
    """Status reports installed purely from file presence."""
    (models_dir / "plain.onnx").write_bytes(b"present")
    status = {entry.id: entry for entry in get_models_status(models_dir=models_dir, manifest_fp=models_manifest_fp)}
    assert status["m-plain"].installed is True
    assert status["m-hashed"].installed is False
    assert status["m-plain"].to_dict() == {
        "id": "m-plain",
        "name": "Plain Model",
        "description": "Local model without a digest.",
        "sizeBytes": len(b"plain-test-model"),
        "installed": True,
    }


def test_get_installed_model_path_requires_download(models_dir: Path, models_manifest_fp: Path):
    """An uninstalled catalog model is reported as not downloaded."""
    with pytest.raises(ModelNotFoundError) as exc_info:
        get_installed_model_path("m-plain", models_dir=models_dir, manifest_fp=models_manifest_fp)
    assert "Plain Model" in str(exc_info.value)
    assert "not downloaded" in str(exc_info.value)


def test_delete_model_is_idempotent(models_dir: Path, models_manifest_fp: Path):
    """Deleting twice succeeds and leaves the model uninstalled."""
    fetch_model("m-plain", models_dir=models_dir, manifest_fp=models_manifest_fp)
    delete_model("m-plain", models_dir=models_dir, manifest_fp=models_manifest_fp)
    delete_model("m-plain", models_dir=models_dir, manifest_fp=models_manifest_fp)
    assert not (models_dir / "plain.onnx").exists()


def test_delete_model_unknown_id(models_dir: Path, models_manifest_fp: Path):
    """Deleting an unknown id is a ModelNotFound error."""
    with pytest.raises(ModelNotFoundError):
        delete_model("nope", models_dir=models_dir, manifest_fp=models_manifest_fp)
