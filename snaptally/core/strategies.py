"""
Ordered fallback chain: try each strategy until one produces a receipt.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .logging import get_logger
from .models import ParsedReceipt

logger = get_logger(__name__)


@dataclass(frozen=True)
class StrategyResult:
    """Outcome of one strategy: a receipt on success, a reason on failure."""
    receipt: Optional[ParsedReceipt] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.receipt is not None

    @classmethod
    def success(cls, receipt: ParsedReceipt) -> "StrategyResult":
        return cls(receipt=receipt)

    @classmethod
    def failure(cls, reason: str) -> "StrategyResult":
        return cls(reason=reason)


Strategy = Callable[[], StrategyResult]


def run_strategies(strategies: Sequence[Tuple[str, Strategy]]) -> Tuple[str, ParsedReceipt]:
    """
    Run strategies in order and return (name, receipt) of the first success.

    The last strategy is expected to always succeed; RuntimeError is raised if
    none does.
    """
    failures: List[str] = []
    for name, strategy in strategies:
        result = strategy()
        if result.ok:
            if failures:
                logger.info("Using %s strategy after: %s", name, "; ".join(failures))
            else:
                logger.debug("Using %s strategy", name)
            return name, result.receipt
        logger.warning("Strategy %s failed: %s", name, result.reason)
        failures.append(f"{name}: {result.reason}")
    raise RuntimeError("No strategy produced a receipt (" + "; ".join(failures) + ")")
