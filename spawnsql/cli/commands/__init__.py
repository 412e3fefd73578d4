"""Command implementations package."""

from . import (
    migration,
    test,
)

__all__ = [
    'migration',
    'test',
]
