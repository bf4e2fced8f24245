"""
Market cap alert evaluation.

A new observation is compared with the last stored market cap for the
token, the state is overwritten, and every alert configured for the token
is checked against the movement. The result is a list of edit intents; no
Telegram call happens here.
"""

import logging
from typing import List, Optional

from .models import (
    DIRECTION_DOWN,
    DIRECTION_UP,
    KIND_AMOUNT,
    KIND_THRESHOLD,
    EditIntent,
    MarketCapAlert,
    MarketCapChange,
    Observation,
)
from .render import build_market_cap_message, pumpfun_kb
from .storage import Store
from .util import as_number

log = logging.getLogger(__name__)


def compute_change(prior: Optional[float], current: float) -> MarketCapChange:
    """
    Direction and size of the move from `prior` to `current`.

    A missing or zero prior counts as a 100% move, so the first observation
    of a token can trigger up alerts with a threshold of at most 100%.
    """
    prior = prior or 0.0
    is_up = current > prior
    absolute_change = abs(current - prior)
    if prior == 0:
        percent_change = 100.0
    else:
        percent_change = absolute_change / prior * 100
    return MarketCapChange(
        prior=prior,
        current=current,
        is_up=is_up,
        absolute_change=absolute_change,
        percent_change=percent_change,
    )


def should_notify(alert: MarketCapAlert, change: MarketCapChange) -> bool:
    """Inclusive comparison: a move equal to the configured limit fires."""
    direction_matches = (
        (alert.direction == DIRECTION_UP and change.is_up)
        or (alert.direction == DIRECTION_DOWN and not change.is_up)
    )
    if not direction_matches:
        return False

    if alert.kind == KIND_THRESHOLD:
        threshold = as_number(alert.threshold)
        return threshold is not None and change.percent_change >= threshold
    if alert.kind == KIND_AMOUNT:
        amount = as_number(alert.amount)
        return amount is not None and change.absolute_change >= amount

    log.debug(f"ignoring alert with unknown kind {alert.kind!r} chat={alert.chat_id}")
    return False


async def evaluate_market_cap(store: Store, obs: Observation) -> List[EditIntent]:
    if not obs.token:
        return []

    prior = await store.get_market_cap(obs.token)
    await store.upsert_market_cap(obs.token, obs.market_cap_usd)
    change = compute_change(prior, obs.market_cap_usd)

    alerts = await store.find_alerts_for_token(obs.token)
    if not alerts:
        return []

    text = build_market_cap_message(obs)
    markup = pumpfun_kb(obs.token)
    intents = [
        EditIntent(chat_id=a.chat_id, message_id=a.message_id, text=text, reply_markup=markup)
        for a in alerts
        if should_notify(a, change)
    ]
    if intents:
        log.info(
            f"[MC] {obs.token} {change.prior:,.0f} -> {change.current:,.0f} "
            f"({'+' if change.is_up else '-'}{change.percent_change:.1f}%) fires {len(intents)}/{len(alerts)} alert(s)"
        )
    return intents
