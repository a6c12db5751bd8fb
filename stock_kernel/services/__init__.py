"""Kernel services (flush-only; callers own the transaction)."""

from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_audit_log import StockAuditLog

__all__ = ["BaseService", "StockAuditLog"]
