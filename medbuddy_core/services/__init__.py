# =============================================================================
# medbuddy_core/services/__init__.py
# Service Layer Base Types
# =============================================================================

from .base_service import BaseService, ServiceResult

__all__ = ["BaseService", "ServiceResult"]
