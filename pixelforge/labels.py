"""ImageNet class label table used by the classification worker."""

import json
from functools import lru_cache
from pathlib import Path


DEFAULT_LABELS_FP = Path(__file__).with_name("imagenet_labels.json")


@lru_cache(maxsize=None)
def load_labels(labels_fp: str | Path | None = None) -> tuple[str, ...]:
    """Load an ordered label table (index -> label) from a JSON list."""
    path = Path(labels_fp).expanduser().resolve() if labels_fp else DEFAULT_LABELS_FP
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError(f"label table must be a JSON list: {path}")
    return tuple(str(label) for label in payload)
