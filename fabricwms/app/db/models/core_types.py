import enum


class PurchaseStatus(str, enum.Enum):
    pending = "PENDING"
    received = "RECEIVED"
    cancelled = "CANCELLED"


class MovementDirection(str, enum.Enum):
    in_ = "IN"
    out = "OUT"


class MovementReason(str, enum.Enum):
    purchase_receipt = "PURCHASE_RECEIPT"
    opening_balance = "OPENING_BALANCE"
    adjustment = "ADJUSTMENT"
    production = "PRODUCTION"
