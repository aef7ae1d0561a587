from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from .storage import atomic_write_json, iso_now

logger = logging.getLogger(__name__)


def save_run(
    runs_dir: Path,
    run_type: str,
    prompt: str,
    response: Any,
    model: str,
    meta: Optional[dict] = None,
) -> Optional[Path]:
    timestamp = iso_now().replace(":", "-")
    path = runs_dir / f"{timestamp}-{run_type}.json"
    payload = {
        "run_type": run_type,
        "timestamp": iso_now(),
        "model": model,
        "prompt": prompt,
        "response": response,
        "meta": meta or {},
    }
    try:
        atomic_write_json(path, payload)
    except OSError as exc:
        logger.warning("Could not record run %s: %s", run_type, exc)
        return None
    return path
