"""
Token counting and usage normalization.

Holds the per-observation token counts and the single place where
absent token classes are normalized to zero.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidInput

# Accepted spellings per token class, snake_case first
_FIELD_ALIASES = {
    "input": ("input", "input_tokens"),
    "output": ("output", "output_tokens"),
    "cache_read": ("cache_read", "cacheRead", "cache_read_tokens"),
    "cache_write": ("cache_write", "cacheWrite", "cache_write_tokens"),
}


@dataclass(frozen=True)
class TokenCounts:
    """Token usage for one observation (a call, a session, a worker...).

    Every class is a non-negative integer. Use ``from_mapping`` to build one
    from raw collector data where fields may be missing.
    """
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_write: int = 0

    def __post_init__(self):
        """Validate every token class is a non-negative integer."""
        for name in ("input", "output", "cache_read", "cache_write"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidInput(f"{name} tokens must be an integer, got {value!r}")
            if value < 0:
                raise InvalidInput(f"{name} tokens cannot be negative: {value}")

    @property
    def total(self) -> int:
        """Total tokens across all classes."""
        return self.input + self.output + self.cache_read + self.cache_write

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "TokenCounts":
        """Build counts from a raw usage record.

        Missing or null token classes count as zero. Integral floats are
        accepted since JSON producers sometimes emit ``12.0``.

        Raises:
            InvalidInput: If a value is negative, fractional or not numeric
        """
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise InvalidInput(f"Token usage must be a mapping, got {type(raw).__name__}")

        values = {}
        for name, aliases in _FIELD_ALIASES.items():
            value = None
            for alias in aliases:
                if raw.get(alias) is not None:
                    value = raw[alias]
                    break
            values[name] = _to_count(name, value)
        return cls(**values)

    def to_dict(self) -> Dict[str, int]:
        return {
            "input": self.input,
            "output": self.output,
            "cache_read": self.cache_read,
            "cache_write": self.cache_write,
            "total": self.total,
        }


ZERO_TOKENS = TokenCounts()


def _to_count(name: str, value: Any) -> int:
    """Normalize one raw token value to an int (None becomes 0)."""
    if value is None:
        return 0
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{name} tokens must be an integer, got {value!r}")
    return value
