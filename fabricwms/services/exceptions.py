"""
Erreurs métier du moteur de réconciliation.

Chaque erreur porte:
- un code machine (`code`)
- un statut HTTP (`status_code`)
- `retryable`: le client peut rejouer la requête telle quelle
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class WMSError(Exception):
    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "detail": self.message,
            "error": self.code,
            "details": self.details,
            "retryable": self.retryable,
        }


# ---------- VALIDATION ----------
class ValidationError(WMSError):
    status_code = 400

    def __init__(self, field: str, message: str, value: Any = None):
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={
                "field": field,
                "value": str(value)[:100] if value is not None else None,
            },
        )


# ---------- NOT FOUND ----------
class NotFoundError(WMSError):
    status_code = 404


class MaterialNotFoundError(NotFoundError):
    def __init__(self, material_id: int):
        super().__init__(
            "Material not found",
            code="MATERIAL_NOT_FOUND",
            details={"material_id": material_id},
        )


class PurchaseNotFoundError(NotFoundError):
    def __init__(self, purchase_id: int):
        super().__init__(
            "Purchase record not found",
            code="PURCHASE_NOT_FOUND",
            details={"purchase_id": purchase_id},
        )


# ---------- CONFLICT (règle métier) ----------
class ConflictError(WMSError):
    status_code = 409


class NegativeStockError(ConflictError):
    def __init__(self, material_id: int, qty_on_hand: Decimal, quantity: Decimal):
        super().__init__(
            "Operation would result in negative stock. "
            f"Current: {qty_on_hand}, Movement: {quantity}",
            code="NEGATIVE_STOCK",
            details={
                "material_id": material_id,
                "qty_on_hand": str(qty_on_hand),
                "quantity": str(quantity),
            },
        )


class PurchaseHasMovementsError(ConflictError):
    # 400 conservé pour compatibilité avec les clients existants
    status_code = 400

    def __init__(self, purchase_id: int):
        super().__init__(
            "Cannot delete purchase record with related material movements",
            code="PURCHASE_HAS_MOVEMENTS",
            details={"purchase_id": purchase_id},
        )


class MaterialCodeExistsError(ConflictError):
    def __init__(self, code: str):
        super().__init__(
            "Material code already exists",
            code="MATERIAL_CODE_EXISTS",
            details={"code": code},
        )


class ConcurrentUpdateError(ConflictError):
    retryable = True

    def __init__(self, reason: str):
        super().__init__(
            f"Concurrent update detected: {reason}",
            code="CONCURRENT_UPDATE",
            details={"reason": reason},
        )


# ---------- INFRA ----------
class TransientStorageError(WMSError):
    status_code = 503
    retryable = True

    def __init__(self, operation: str, error: str):
        super().__init__(
            f"Storage temporarily unavailable during {operation}",
            code="TRANSIENT_STORAGE_ERROR",
            details={"operation": operation, "error": error[:200]},
        )


class StorageIntegrityError(WMSError):
    """Contrainte DB (CHECK, FK...) violée: déterministe, rejouer n'y change rien."""

    status_code = 500

    def __init__(self, operation: str, error: str):
        super().__init__(
            f"Data integrity violation during {operation}",
            code="INTEGRITY_ERROR",
            details={"operation": operation, "error": error[:200]},
        )
