"""Output helpers for the spawn CLI."""

from .colors import success, error, warning, info, dim, bold, kv, table

__all__ = ["success", "error", "warning", "info", "dim", "bold", "kv", "table"]
