"""Load the static product, supplier and price-history datasets.

Each dataset is a JSON object stored as ``<base>/<name>.json`` whose records
sit under a key of the same name, e.g. ``{"suppliers": [...]}``.  Files are
read once per path and cached for the life of the process.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

_DATASET_CACHE: Dict[Path, Dict[str, Any]] = {}

REFERENCE_DATASETS = ("products", "suppliers", "price_history")


def reference_data_dir() -> Path:
    return Path(__file__).resolve().parent.parent / "resources" / "reference_data"


def _dataset_path(name: str, base_path: Optional[Union[str, Path]]) -> Path:
    key = str(name).strip()
    if not key:
        raise ValueError("reference dataset name must be a non-empty string")
    base = Path(base_path) if base_path is not None else reference_data_dir()
    return base / f"{key}.json"


def load_reference_dataset(
    name: str, base_path: Optional[Union[str, Path]] = None
) -> Dict[str, Any]:
    """Return the decoded JSON object for dataset ``name``.

    A missing or malformed file loads as an empty object so the service can
    still start with partial reference data; the problem is logged.
    """

    path = _dataset_path(name, base_path)
    cached = _DATASET_CACHE.get(path)
    if cached is not None:
        return cached

    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except FileNotFoundError:
        logger.warning("Reference dataset %s not found", path)
        payload = {}
    except json.JSONDecodeError:
        logger.exception("Reference dataset %s could not be decoded", path)
        payload = {}

    if not isinstance(payload, dict):
        logger.warning("Reference dataset %s is not a JSON object; ignoring it", path)
        payload = {}

    _DATASET_CACHE[path] = payload
    return payload


def load_reference_records(
    name: str, base_path: Optional[Union[str, Path]] = None
) -> List[Dict[str, Any]]:
    """Return the record list stored under ``name`` in dataset ``name``."""

    records = load_reference_dataset(name, base_path).get(str(name).strip(), [])
    if not isinstance(records, list):
        logger.warning("Reference dataset %s has no record list", name)
        return []
    valid = [record for record in records if isinstance(record, dict)]
    if len(valid) != len(records):
        logger.warning(
            "Skipped %d malformed records in reference dataset %s",
            len(records) - len(valid),
            name,
        )
    return valid


def clear_reference_cache() -> None:
    _DATASET_CACHE.clear()
