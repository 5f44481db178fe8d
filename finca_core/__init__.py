# =============================================================================
# finca_core/__init__.py
# Local-first data layer for the Finca management app
# =============================================================================

__version__ = "1.0.0"
