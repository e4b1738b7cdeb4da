"""Dispatch table mapping a conversion kind to exactly one strategy.

A strategy is a plain ``async`` function::

    @strategy("png-to-jpg", failure_prefix="PNG to JPG failed")
    async def png_to_jpg(request, ctx) -> ConversionResult: ...

The decorator is only a calling convention: a raised ConversionError is
turned into a failed ConversionResult, everything else propagates to the
dispatcher.
"""

import functools
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

import structlog

from multiconvert.core.config import ConversionConfig, FetchConfig, TimeoutsConfig, ToolsConfig
from multiconvert.models.conversion import ConversionRequest, ConversionResult
from multiconvert.services.artifact_store import ArtifactStore
from multiconvert.strategies.exceptions import ConversionError, UnsupportedKindError

logger = structlog.get_logger(__name__)


@dataclass
class StrategyContext:
    """Collaborators and settings a strategy may use."""

    store: ArtifactStore
    conversion: ConversionConfig
    fetch: FetchConfig
    tools: ToolsConfig
    timeouts: TimeoutsConfig


StrategyFunc = Callable[[ConversionRequest, StrategyContext], Awaitable[ConversionResult]]


class StrategyTable:
    """Registry of strategies keyed by kind."""

    def __init__(self) -> None:
        self._strategies: Dict[str, StrategyFunc] = {}

    def register(
        self,
        kind: str,
        failure_prefix: Optional[str] = None,
    ) -> Callable[[StrategyFunc], StrategyFunc]:
        """Decorator registering a strategy for ``kind``.

        Args:
            kind: Conversion kind or fetch format handled by the function
            failure_prefix: Prepended to failure messages, e.g. "PNG to JPG failed"
        """

        def decorator(func: StrategyFunc) -> StrategyFunc:
            @functools.wraps(func)
            async def wrapper(
                request: ConversionRequest, ctx: StrategyContext
            ) -> ConversionResult:
                try:
                    return await func(request, ctx)
                except ConversionError as e:
                    message = f"{failure_prefix}: {e.message}" if failure_prefix else e.message
                    logger.warning(
                        "strategy_failed",
                        kind=kind,
                        category=e.category.value,
                        error=message,
                    )
                    return ConversionResult.failed(e.category, message, title=e.title)

            if kind in self._strategies:
                raise ValueError(f"Strategy already registered for kind: {kind}")
            self._strategies[kind] = wrapper
            return wrapper

        return decorator

    def resolve(self, kind: str) -> StrategyFunc:
        """Return the strategy for ``kind``.

        Raises:
            UnsupportedKindError: If nothing is registered for the kind
        """
        try:
            return self._strategies[kind]
        except KeyError:
            raise UnsupportedKindError(kind) from None

    def supports(self, kind: str) -> bool:
        return kind in self._strategies

    @property
    def kinds(self) -> List[str]:
        return sorted(self._strategies)


# Populated by the strategy modules when ``multiconvert.strategies`` is imported
DEFAULT_TABLE = StrategyTable()
strategy = DEFAULT_TABLE.register
