"""
Fallback chains

Best-effort pipelines (source fetching, structured extraction) are expressed
as an ordered list of named strategies. Each strategy returns a
StrategyResult instead of raising; ``run_chain`` tries them in order and
stops at the first success, collecting diagnostics from every attempt.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

logger = logging.getLogger("sift.common.fallback")

T = TypeVar("T")


@dataclass
class StrategyResult(Generic[T]):
    """Outcome of one strategy attempt"""
    success: bool
    value: Optional[T] = None
    diagnostic: str = ""

    @classmethod
    def ok(cls, value: T, diagnostic: str = "") -> "StrategyResult[T]":
        return cls(success=True, value=value, diagnostic=diagnostic)

    @classmethod
    def fail(cls, diagnostic: str) -> "StrategyResult[T]":
        return cls(success=False, value=None, diagnostic=diagnostic)


Strategy = Callable[..., StrategyResult]


@dataclass
class ChainResult(Generic[T]):
    """Outcome of a whole chain: the winning strategy and every diagnostic"""
    value: Optional[T]
    strategy: Optional[str]
    diagnostics: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.strategy is not None


def run_chain(
    strategies: Sequence[Tuple[str, Strategy]],
    *args: Any,
    **kwargs: Any,
) -> ChainResult:
    """Try each named strategy in order until one succeeds.

    A strategy that raises is treated as a failure with the exception text
    as its diagnostic; the chain itself never raises.
    """
    diagnostics: List[Tuple[str, str]] = []
    for name, strategy in strategies:
        try:
            result = strategy(*args, **kwargs)
        except Exception as e:
            logger.warning("Strategy '%s' raised: %s", name, e)
            diagnostics.append((name, f"error: {e}"))
            continue

        diagnostics.append((name, result.diagnostic))
        if result.success:
            logger.debug("Strategy '%s' succeeded: %s", name, result.diagnostic)
            return ChainResult(value=result.value, strategy=name, diagnostics=diagnostics)
        logger.info("Strategy '%s' skipped: %s", name, result.diagnostic)

    return ChainResult(value=None, strategy=None, diagnostics=diagnostics)
