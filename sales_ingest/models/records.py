from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

"""Canonical record models for the sales ingestion pipeline.

Normalizers emit these frozen dataclasses; repositories turn them into the
camelCase dictionaries stored in the key-value table via ``to_dict()``.
"""

__all__ = [
    "Channel",
    "Area",
    "SaleRecord",
    "ReturnRecord",
    "InventoryRecord",
    "PaymentMapping",
]


class Channel(str, Enum):
    """Sales origin category."""
    NEGOZIO_DONNA = "negozio_donna"
    NEGOZIO_UOMO = "negozio_uomo"
    ECOMMERCE = "ecommerce"
    MARKETPLACE = "marketplace"


class Area(str, Enum):
    """Fulfillment partner tag (not a geographic area)."""
    FERRARIS = "Ferraris"
    ZUKLAT = "Zuklat"


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    # optional fields are omitted rather than stored as null
    out: dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        out[key] = value.value if isinstance(value, Enum) else value
    return out


@dataclass(frozen=True)
class SaleRecord:
    """A sold line item.

    ``date`` is always a full ISO-8601 timestamp. ``amount`` is never negative
    and may include shipping apportioned to the first line of a transaction.
    """
    date: str
    user: str
    channel: Channel
    sku: str
    quantity: int
    price: float
    amount: float
    brand: str | None = None
    category: str | None = None
    season: str | None = None
    marketplace: str | None = None
    payment_method: str | None = None
    area: Area | None = None
    country: str | None = None
    order_reference: str | None = None
    shipping_cost: float | None = None
    tax_rate: float | None = None
    documento: str | None = None
    numero: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "date": self.date,
            "user": self.user,
            "channel": self.channel,
            "sku": self.sku,
            "quantity": self.quantity,
            "price": self.price,
            "amount": self.amount,
            "brand": self.brand,
            "category": self.category,
            "season": self.season,
            "marketplace": self.marketplace,
            "paymentMethod": self.payment_method,
            "area": self.area,
            "country": self.country,
            "orderReference": self.order_reference,
            "shippingCost": self.shipping_cost,
            "taxRate": self.tax_rate,
            "documento": self.documento,
            "numero": self.numero,
        })


@dataclass(frozen=True)
class ReturnRecord:
    """A returned line item or a return shipping deduction.

    ``amount`` is signed: negative for a refunded item, positive for a
    deduction withheld from the refund.
    """
    date: str
    channel: Channel
    quantity: int
    price: float
    amount: float
    sku: str | None = None
    country: str | None = None
    area: Area | None = None
    payment_method: str | None = None
    order_reference: str | None = None
    return_shipping_cost: float | None = None
    tax_rate: float | None = None
    reason: str | None = None

    @property
    def is_deduction(self) -> bool:
        return self.amount > 0

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "date": self.date,
            "channel": self.channel,
            "sku": self.sku,
            "quantity": self.quantity,
            "price": self.price,
            "amount": self.amount,
            "country": self.country,
            "area": self.area,
            "paymentMethod": self.payment_method,
            "orderReference": self.order_reference or None,
            "returnShippingCost": self.return_shipping_cost,
            "taxRate": self.tax_rate,
            "reason": self.reason,
        })


@dataclass(frozen=True)
class InventoryRecord:
    sku: str
    brand: str
    purchase_price: float
    sell_price: float = 0.0
    category: str = ""
    collection: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "sku": self.sku,
            "brand": self.brand,
            "purchasePrice": self.purchase_price,
            "sellPrice": self.sell_price,
            "category": self.category,
            "collection": self.collection,
        }


@dataclass(frozen=True)
class PaymentMapping:
    """Operator-maintained classification of a payment method."""
    macro_area: str
    channel: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PaymentMapping:
        return cls(macro_area=str(data.get("macroArea", "")), channel=str(data.get("channel", "")))

    def to_dict(self) -> dict[str, str]:
        return {"macroArea": self.macro_area, "channel": self.channel}
