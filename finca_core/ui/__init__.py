# =============================================================================
# finca_core/ui/__init__.py
# =============================================================================

from .sync_indicator import render_sync_indicator, STATUS_LABELS

__all__ = ["render_sync_indicator", "STATUS_LABELS"]
