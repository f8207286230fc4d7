from pathlib import Path
from typing import Any, Dict, List
import json
import math

import numpy as np
import pandas as pd

def _ensure_exists(path: Path):
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"file not found: {p}")

def _to_native(value: Any) -> Any:
    """Undo pandas/pyarrow conversions: ndarray -> list, numpy scalar -> Python, NaN -> None."""
    if isinstance(value, dict):
        return {k: _to_native(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, np.ndarray)):
        return [_to_native(v) for v in value]
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value

def read_json(path: Path):
    _ensure_exists(path)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)

def read_jsonl(path: Path) -> List[Dict[str, Any]]:
    _ensure_exists(path)
    with open(path, "r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]

def read_parquet(path: Path) -> pd.DataFrame:
    _ensure_exists(path)
    return pd.read_parquet(path)

def read_records(path: Path) -> List[Dict[str, Any]]:
    """Load a record snapshot (.json array, .jsonl or .parquet)."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".parquet":
        df = read_parquet(path)
        return [_to_native(row) for row in df.to_dict(orient="records")]
    if suffix == ".jsonl":
        return read_jsonl(path)
    data = read_json(path)
    if not isinstance(data, list):
        raise ValueError(f"snapshot file must contain a JSON array: {path}")
    return data
