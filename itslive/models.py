from dataclasses import dataclass, field
from typing import Any, Dict, Optional

KIND_THRESHOLD = "threshold"
KIND_AMOUNT = "amount"
ALERT_KINDS = (KIND_THRESHOLD, KIND_AMOUNT)

DIRECTION_UP = "up"
DIRECTION_DOWN = "down"
DIRECTIONS = (DIRECTION_UP, DIRECTION_DOWN)


@dataclass
class MarketCapAlert:
    chat_id: str
    token_address: str
    message_id: int
    kind: str                 # threshold|amount
    threshold: float = 0.0    # percent, kind=threshold
    amount: float = 0.0       # usd, kind=amount
    direction: str = DIRECTION_UP


@dataclass
class PinnedMessage:
    chat_id: str
    message_id: int


@dataclass
class Observation:
    token: str
    market_cap_usd: float
    name: str = ""
    symbol: str = ""


@dataclass
class MarketCapChange:
    prior: float
    current: float
    is_up: bool
    absolute_change: float
    percent_change: float


@dataclass
class EditIntent:
    chat_id: str
    message_id: int
    text: str
    reply_markup: Optional[Dict[str, Any]] = field(default=None)
