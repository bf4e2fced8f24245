from typing import Any, Dict, List, Tuple

from .config import DEFAULT_THRESHOLD_PERCENT, PUMPFUN_COIN_URL
from .models import KIND_AMOUNT, MarketCapAlert, Observation
from .util import as_number, get_str, pretty_usd


# =========================
# UI BUILDERS
# =========================
def kb_inline(rows: List[List[Tuple[str, str]]]) -> Dict[str, Any]:
    return {"inline_keyboard": [[{"text": t, "callback_data": d} for (t, d) in row] for row in rows]}


def pumpfun_kb(mint: str) -> Dict[str, Any]:
    return {"inline_keyboard": [[{"text": "Open on Pumpfun", "url": PUMPFUN_COIN_URL.format(mint=mint)}]]}


def alert_menu_kb() -> Dict[str, Any]:
    pct = DEFAULT_THRESHOLD_PERCENT
    return kb_inline([
        [(f"Alert me when market cap increases by {pct}%", f"mc_alert|threshold|{pct}|up")],
        [(f"Alert me when market cap decreases by {pct}%", f"mc_alert|threshold|{pct}|down")],
        [("Delete this alert", "mc_alert|delete|0|none")],
    ])


# =========================
# STREAM MESSAGES
# =========================
def stream_label(stream: Dict[str, Any]) -> str:
    return get_str(stream, "name") or get_str(stream, "symbol") or "Unnamed token"


def build_live_message(stream: Dict[str, Any]) -> str:
    title = get_str(stream, "livestream_title")
    title_line = f"\n\n🎬 {title}" if title else ""
    stats = ""
    if as_number(stream.get("viewers")) is not None:
        stats = (
            f"\n👀 Viewers: {stream.get('viewers')} "
            f"\n💰Market Cap: {stream.get('market_cap_usd')}"
            f"\n👤Holders: {stream.get('holders')}"
        )
    return f"🟢 {stream_label(stream)} is LIVE!{title_line}{stats}🚀"


def build_market_cap_message(obs: Observation) -> str:
    label = obs.name or obs.symbol or "Unnamed token"
    return f"📈 {label} market cap updated: ${pretty_usd(obs.market_cap_usd)}"


def build_offline_message(stream: Dict[str, Any]) -> str:
    return f"🔴 {stream_label(stream)} went offline."


# =========================
# COMMAND REPLIES
# =========================
HELP_TEXT = "\n".join([
    "$ITSLIVE Livestream Bot commands:",
    "/setup <tokenAddress> - Subscribe to a token",
    "/unsetup <tokenAddress> - Unsubscribe from a token",
    "/ca - Send the contract address",
    "/notify <tokenAddress> [threshold|amount] [value] [up|down] - Market cap alert",
    "/alerts - List market cap alerts",
])


def build_alert_menu_message(mint: str) -> str:
    return f"Set market cap alerts for token: {mint}"


def describe_alert(alert: MarketCapAlert) -> str:
    if alert.kind == KIND_AMOUNT:
        rule = f"${pretty_usd(alert.amount)}"
    else:
        rule = f"{pretty_usd(alert.threshold)}%"
    return f"{alert.direction.upper()} {rule}"


def build_alert_created_message(token_display: str, alert: MarketCapAlert) -> str:
    return f"✅ Alert created!\n\nToken: {token_display}\nAlert: {describe_alert(alert)}"


def build_alert_list_message(alerts: List[MarketCapAlert]) -> str:
    if not alerts:
        return "No market cap alerts for this chat. Use /notify <tokenAddress> to add one."
    lines = ["🔔 Market cap alerts:", ""]
    for a in alerts:
        lines.append(f"• {a.token_address}: {describe_alert(a)}")
    return "\n".join(lines)
