"""Request and result types exchanged between the dispatcher and strategies."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class FailureCategory(str, Enum):
    """Classified reason a strategy failed."""

    UNAVAILABLE = "unavailable"
    RESTRICTED = "restricted"
    REMOVED = "removed"
    BLOCKED = "blocked"
    LIVE_CONTENT = "live_content"
    DURATION_EXCEEDED = "duration_exceeded"
    TOOL_MISSING = "tool_missing"
    TOOL_OUTDATED = "tool_outdated"
    CONVERSION_FAILED = "conversion_failed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ConversionRequest:
    """A typed unit of work handed to a strategy.

    Attributes:
        kind: Conversion kind or fetch format
        source: Staged input file path or remote URL
        options: Strategy options (e.g. ``quality``)
    """

    kind: str
    source: str
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConversionResult:
    """Outcome of a strategy run.

    A successful result carries ``output`` and, for paired-output
    strategies, ``secondary_output``. A failed one carries a category
    and a human-readable message.
    """

    success: bool
    output: Optional[Path] = None
    secondary_output: Optional[Path] = None
    category: Optional[FailureCategory] = None
    message: Optional[str] = None
    title: Optional[str] = None

    @classmethod
    def succeeded(
        cls,
        output: Path,
        secondary_output: Optional[Path] = None,
        title: Optional[str] = None,
    ) -> "ConversionResult":
        return cls(success=True, output=output, secondary_output=secondary_output, title=title)

    @classmethod
    def failed(
        cls,
        category: FailureCategory,
        message: str,
        title: Optional[str] = None,
    ) -> "ConversionResult":
        return cls(success=False, category=category, message=message, title=title)
