from __future__ import annotations

import os
from typing import Dict


def read_env_file(env_path: str = ".env/env_data.txt") -> Dict[str, str]:
    """Parse a ``key = value`` file. Missing files yield an empty mapping."""
    values: Dict[str, str] = {}
    try:
        with open(env_path, "r", encoding="utf-8") as f:
            for raw in f:
                line = raw.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" not in line:
                    continue
                key, value = (part.strip() for part in line.split("=", 1))
                if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                    value = value[1:-1]
                values[key] = value
    except FileNotFoundError:
        pass
    return values


def write_text(path: str, text: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    # newline="" keeps content byte-exact on Windows
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)
