"""Conversion strategy implementations.

Importing this package registers every strategy in ``DEFAULT_TABLE``.
"""

from multiconvert.strategies import documents, fetch, images, media  # noqa: F401
from multiconvert.strategies.exceptions import (
    ConversionError,
    FetchError,
    ProcessFailedError,
    ToolNotFoundError,
    UnsupportedKindError,
)
from multiconvert.strategies.registry import (
    DEFAULT_TABLE,
    StrategyContext,
    StrategyTable,
    strategy,
)

__all__ = [
    "DEFAULT_TABLE",
    "StrategyContext",
    "StrategyTable",
    "strategy",
    "ConversionError",
    "FetchError",
    "ProcessFailedError",
    "ToolNotFoundError",
    "UnsupportedKindError",
]
