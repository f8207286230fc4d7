from pathlib import Path
from typing import Any, Dict, Iterable
import json

import pandas as pd

def _tmp_path(out: Path) -> Path:
    return out.with_suffix(out.suffix + ".tmp")

def atomic_write_json(records: Iterable[Dict[str, Any]], out: Path, lines: bool = False) -> None:
    out.parent.mkdir(parents=True, exist_ok=True)
    tmp = _tmp_path(out)
    with open(tmp, "w", encoding="utf-8") as f:
        if lines:
            for record in records:
                f.write(json.dumps(record, default=str, ensure_ascii=False) + "\n")
        else:
            json.dump(list(records), f, default=str, ensure_ascii=False, indent=2)
    tmp.replace(out)             # atomic replace on same filesystem

def atomic_write_parquet(df: pd.DataFrame, out: Path) -> None:
    out.parent.mkdir(parents=True, exist_ok=True)
    tmp = _tmp_path(out)
    df.to_parquet(tmp)
    tmp.replace(out)             # atomic replace on same filesystem

def write_records(records: Iterable[Dict[str, Any]], out: Path) -> None:
    """Write a record snapshot, format chosen by suffix (.json, .jsonl, .parquet)."""
    out = Path(out)
    suffix = out.suffix.lower()
    if suffix == ".parquet":
        atomic_write_parquet(pd.DataFrame.from_records(list(records)), out)
    else:
        atomic_write_json(records, out, lines=suffix == ".jsonl")
