# =============================================================================
# finca_core/ui/sync_indicator.py
# Streamlit Sync/Offline Indicator
# =============================================================================

from __future__ import annotations
from typing import Any, Dict

import streamlit as st

from finca_core.errors import ErrorContext


STATUS_LABELS = {
    "online": ("🟢", "Online"),
    "offline": ("🔴", "Offline - changes are saved locally"),
    "syncing": ("🔄", "Syncing..."),
    "error": ("⚠️", "Sync error - will retry on next sync"),
}


def render_sync_indicator(context, container: Any = None) -> Dict[str, Any]:
    """
    Render connection status, pending count and a "Sync now" button.

    Args:
        context: OfflineContext providing get_status() and force_sync()
        container: Streamlit container to draw into (default: st.sidebar)

    Returns:
        The status dict that was rendered
    """
    target = container if container is not None else st.sidebar
    status = context.get_status()
    icon, label = STATUS_LABELS.get(status["status"], ("❔", status["status"]))

    target.markdown(f"**{icon} {label}**")

    if status["was_offline"]:
        target.success("Connection restored")

    pending = status["pending_count"]
    if pending:
        noun = "change" if pending == 1 else "changes"
        target.caption(f"{pending} pending {noun}")

    if status["last_sync"]:
        target.caption(f"Last sync: {status['last_sync']}")

    can_sync = status["is_online"] and status["status"] != "syncing"
    if target.button("Sync now", disabled=not can_sync, key="finca_sync_now"):
        with ErrorContext("Manual sync", show_user_message=True):
            if context.force_sync():
                target.success("Sync complete")
            else:
                target.warning("Sync could not complete, changes stay queued")

    return status
