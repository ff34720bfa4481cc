# =============================================================================
# medbuddy_core/__init__.py
# MedBuddy - household health tracker with offline-first cloud sync
# =============================================================================

__version__ = "1.0.0"
