import os
import yaml
import functools
from typing import Optional
from pathlib import Path

DEFAULT_GUARDRAILS = Path(__file__).parent / "config" / "guardrails.yml"


@functools.lru_cache(maxsize=4)
def load_guardrails(path: Optional[str] = None):
    p = path or os.getenv("GUARDRAILS_PATH") or str(DEFAULT_GUARDRAILS)
    with open(p, "r") as f:
        return yaml.safe_load(f) or {}
