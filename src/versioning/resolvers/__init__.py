"""Version selection strategies."""

from .npm import NpmVersionSelector

__all__ = [
    "NpmVersionSelector",
]
