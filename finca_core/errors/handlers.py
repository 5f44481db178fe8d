# =============================================================================
# finca_core/errors/handlers.py
# Error Handling Utilities for the offline data layer
# =============================================================================

from __future__ import annotations
import traceback
from typing import Optional

import streamlit as st

from finca_core.logging import get_logger
from .exceptions import FincaError

logger = get_logger(__name__)


def handle_error(
    error: Exception,
    show_user_message: bool = False,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Centralized error handling function.

    Sync internals call this with ``show_user_message=False``: per-operation
    detail goes to the log only. UI code may opt into a coarse st.error.

    Args:
        error: The exception to handle
        show_user_message: Whether to display a message via st.error
        log_error: Whether to log the error
        user_message: Custom message to show user (uses error message if None)
    """
    if isinstance(error, FincaError):
        message = user_message or error.message
        code = error.code
        details = error.details
        recoverable = error.recoverable
    else:
        message = user_message or str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        recoverable = True

    if log_error:
        logger.error(
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=error,
        )

    if show_user_message:
        if recoverable:
            st.error(f"Error: {message}")
        else:
            st.error(f"Critical Error: {message}. Please contact support.")


class ErrorContext:
    """
    Context manager for error handling with automatic logging.

    Usage:
        with ErrorContext("Refreshing vacunas cache"):
            store.replace_collection("vacunas", rows)

        # On error, logs "[CODE] Error during: Refreshing vacunas cache"
        # and suppresses the exception when recoverable=True.
    """

    def __init__(
        self,
        operation: str,
        recoverable: bool = True,
        show_user_message: bool = False,
    ):
        self.operation = operation
        self.recoverable = recoverable
        self.show_user_message = show_user_message
        self.error: Optional[BaseException] = None

    def __enter__(self) -> ErrorContext:
        logger.debug(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.debug(f"Completed: {self.operation}")
            return False

        if not isinstance(exc_val, Exception):
            return False

        self.error = exc_val
        if isinstance(exc_val, FincaError):
            handle_error(exc_val, show_user_message=self.show_user_message)
        else:
            handle_error(
                exc_val,
                show_user_message=self.show_user_message,
                user_message=f"Error during: {self.operation}",
            )

        return self.recoverable
