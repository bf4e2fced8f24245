import re
from typing import Any, Dict, Optional

import orjson

MINT_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,}$")
_WS_RE = re.compile(r"\s+")


def safe_orjson_loads(msg: Any) -> Optional[Any]:
    try:
        if isinstance(msg, (bytes, bytearray, str)):
            return orjson.loads(msg)
        return None
    except orjson.JSONDecodeError:
        return None


def as_number(x: Any) -> Optional[float]:
    # bool is an int subclass but never a market cap
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        return None
    return float(x)


def normalize_mint(raw: str) -> str:
    return _WS_RE.sub("", raw or "").strip()


def is_valid_mint(mint: str) -> bool:
    return bool(MINT_RE.match(mint or ""))


def short_mint(mint: str) -> str:
    return f"{mint[:4]}...{mint[-4:]}"


def pretty_usd(x: float) -> str:
    """Thousands-separated figure, up to three decimals, no trailing zeros."""
    if float(x).is_integer():
        return f"{int(x):,}"
    return f"{x:,.3f}".rstrip("0").rstrip(".")


def get_str(d: Dict[str, Any], key: str) -> str:
    v = d.get(key)
    return v.strip() if isinstance(v, str) else ""
