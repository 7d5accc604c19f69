from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from py_trade_history.domain import TradeRecord

LEDGER_KEY = "p2p_trade_data"
PREFERENCES_KEY = "p2p_preferences"


@dataclass
class AppConfig:
    store_dir: str = "./data/ledger"
    error_log_dir: str = "./data/logs"
    ledger_key: str = LEDGER_KEY
    default_asset: str = "USDT"
    default_fiat: str = "TRY"
    log_level: str = "INFO"


@dataclass
class FilterPreferences:
    asset: str = "USDT"
    fiat: str = "TRY"
    market_price: str = ""
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    monthly_goal: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], defaults: "FilterPreferences") -> "FilterPreferences":
        goal = data.get("monthly_goal", defaults.monthly_goal)
        try:
            goal = float(goal) if goal is not None else None
        except (TypeError, ValueError):
            goal = None
        return cls(
            asset=str(data.get("asset") or defaults.asset),
            fiat=str(data.get("fiat") or defaults.fiat),
            market_price=str(data.get("market_price") or ""),
            from_date=data.get("from_date") or None,
            to_date=data.get("to_date") or None,
            monthly_goal=goal,
        )


@dataclass
class LedgerState:
    """ The whole persisted trade set. `version` goes up on every mutation. """
    records: List[TradeRecord] = field(default_factory=list)
    version: int = 0


class LedgerStoreError(Exception):
    pass
