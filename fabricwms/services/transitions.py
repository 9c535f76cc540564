"""
Table de transitions achat -> ledger.

Fonction PURE: (ancien statut, nouveau statut, état du ledger) -> action.
Aucun accès DB ici; l'application atomique est faite par services.procurement.

    old \\ new        PENDING    RECEIVED              CANCELLED
    PENDING          NONE       APPLY (si pas actif)  NONE
    RECEIVED         REVERSE    NONE | REAPPLY        REVERSE
    CANCELLED        NONE       APPLY (si pas actif)  NONE
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal

from fabricwms.app.db.models.core_types import PurchaseStatus


class LedgerAction(str, enum.Enum):
    none = "NONE"
    apply = "APPLY"
    reverse = "REVERSE"
    reapply = "REAPPLY"


@dataclass(frozen=True)
class TransitionPlan:
    action: LedgerAction
    reverse_quantity: Decimal | None = None
    apply_quantity: Decimal | None = None

    @property
    def stock_delta(self) -> Decimal:
        """Variation nette de stock (même matière)."""
        delta = Decimal("0")
        if self.apply_quantity is not None:
            delta += self.apply_quantity
        if self.reverse_quantity is not None:
            delta -= self.reverse_quantity
        return delta

    @property
    def touches_ledger(self) -> bool:
        return self.action is not LedgerAction.none


NO_OP = TransitionPlan(LedgerAction.none)


def plan_transition(
    old_status: PurchaseStatus,
    new_status: PurchaseStatus,
    *,
    active_quantity: Decimal | None,
    receive_quantity: Decimal,
    ledger_fields_changed: bool = False,
) -> TransitionPlan:
    """
    active_quantity: quantité de l'entrée ledger active (None si aucune)
    receive_quantity: received_quantity ?? quantity, après fusion des champs
    ledger_fields_changed: matière/quantité/prix/unité modifiés sur un achat RECEIVED
    """
    entering = new_status is PurchaseStatus.received and old_status is not PurchaseStatus.received
    leaving = old_status is PurchaseStatus.received and new_status is not PurchaseStatus.received
    staying = old_status is PurchaseStatus.received and new_status is PurchaseStatus.received

    if entering:
        if active_quantity is not None:
            return NO_OP
        return TransitionPlan(LedgerAction.apply, apply_quantity=receive_quantity)

    if leaving:
        if active_quantity is None:
            return NO_OP
        return TransitionPlan(LedgerAction.reverse, reverse_quantity=active_quantity)

    if staying and ledger_fields_changed and active_quantity is not None:
        return TransitionPlan(
            LedgerAction.reapply,
            reverse_quantity=active_quantity,
            apply_quantity=receive_quantity,
        )

    return NO_OP
