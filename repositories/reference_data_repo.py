"""Read-only lookups over products, suppliers and supplier price history."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from utils.reference_loader import load_reference_records

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Product:
    sku: str
    name: str
    category: str
    unit: str
    reorder_point: int
    reorder_qty: int
    current_stock: int
    safety_stock: int


@dataclass(frozen=True)
class Supplier:
    id: str
    name: str
    contact_name: str
    contact_email: Optional[str]
    payment_terms: str
    categories: Tuple[str, ...] = field(default_factory=tuple)
    avg_lead_time_days: int = 0
    on_time_delivery_rate: Optional[float] = None
    response_time_hours: Optional[float] = None
    phone: str = ""
    account_number: str = ""
    notes: str = ""


@dataclass(frozen=True)
class PriceEntry:
    date: date
    unit_price: float
    qty: int
    lead_time_days: int
    on_time: bool


@dataclass(frozen=True)
class ProductPriceHistory:
    sku: str
    supplier_id: str
    prices: Tuple[PriceEntry, ...]

    @property
    def latest(self) -> Optional[PriceEntry]:
        if not self.prices:
            return None
        return max(self.prices, key=lambda entry: entry.date)


@dataclass(frozen=True)
class ReorderItem:
    sku: str
    name: str
    category: str
    unit: str
    current_stock: int
    reorder_point: int
    safety_stock: int
    reorder_qty: int
    urgency: str
    last_supplier_name: Optional[str]
    last_unit_price: Optional[float]


_URGENCY_ORDER = {"critical": 0, "warning": 1, "normal": 2}


class ReferenceDataRepository:
    """Static reference data used by the negotiation workflow.

    Built from the JSON datasets by default; tests pass plain sequences.
    ``default_contact_email`` fills in suppliers without an address of their
    own (every simulated supplier shares one mailbox).
    """

    def __init__(
        self,
        *,
        products: Sequence[Product],
        suppliers: Sequence[Supplier],
        price_history: Sequence[ProductPriceHistory] = (),
        default_contact_email: Optional[str] = None,
    ) -> None:
        self._products: Dict[str, Product] = {p.sku: p for p in products}
        self._suppliers: Dict[str, Supplier] = {s.id: s for s in suppliers}
        self._history: Dict[Tuple[str, str], ProductPriceHistory] = {
            (h.sku, h.supplier_id): h for h in price_history
        }
        self._default_contact_email = default_contact_email

    @classmethod
    def from_default(
        cls,
        *,
        default_contact_email: Optional[str] = None,
        base_path: Optional[str] = None,
    ) -> "ReferenceDataRepository":
        """Load the repository from ``resources/reference_data`` or ``base_path``."""

        products = [
            cls._product_from_payload(entry)
            for entry in load_reference_records("products", base_path)
        ]
        suppliers = [
            cls._supplier_from_payload(entry)
            for entry in load_reference_records("suppliers", base_path)
        ]
        history = [
            cls._history_from_payload(entry)
            for entry in load_reference_records("price_history", base_path)
        ]
        logger.debug(
            "Loaded reference data: %d products, %d suppliers, %d price histories",
            len(products),
            len(suppliers),
            len(history),
        )
        return cls(
            products=products,
            suppliers=suppliers,
            price_history=history,
            default_contact_email=default_contact_email,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get_product(self, sku: str) -> Optional[Product]:
        return self._products.get(sku)

    def list_products(self) -> List[Product]:
        return list(self._products.values())

    def get_supplier(self, supplier_id: str) -> Optional[Supplier]:
        return self._suppliers.get(supplier_id)

    def list_suppliers(self) -> List[Supplier]:
        return list(self._suppliers.values())

    def suppliers_for_categories(self, categories: Iterable[str]) -> List[Supplier]:
        wanted = set(categories)
        return [s for s in self._suppliers.values() if wanted.intersection(s.categories)]

    def supplier_email(self, supplier: Supplier) -> Optional[str]:
        return supplier.contact_email or self._default_contact_email

    def price_history(self, sku: str, supplier_id: str) -> Optional[ProductPriceHistory]:
        return self._history.get((sku, supplier_id))

    def history_for_product(self, sku: str) -> List[ProductPriceHistory]:
        return [h for (h_sku, _), h in self._history.items() if h_sku == sku]

    def on_time_rates(self, supplier_ids: Iterable[str]) -> Dict[str, float]:
        rates: Dict[str, float] = {}
        for supplier_id in supplier_ids:
            supplier = self._suppliers.get(supplier_id)
            if supplier is not None and supplier.on_time_delivery_rate is not None:
                rates[supplier_id] = float(supplier.on_time_delivery_rate)
        return rates

    def reorder_list(self) -> List[ReorderItem]:
        """Products at or below their reorder point, most urgent first."""

        items: List[ReorderItem] = []
        for product in self._products.values():
            if product.current_stock > product.reorder_point:
                continue
            urgency = "critical" if product.current_stock < product.safety_stock else "warning"

            last_supplier_name: Optional[str] = None
            last_unit_price: Optional[float] = None
            latest: Optional[Tuple[PriceEntry, str]] = None
            for history in self.history_for_product(product.sku):
                entry = history.latest
                if entry is None:
                    continue
                if latest is None or entry.date > latest[0].date:
                    latest = (entry, history.supplier_id)
            if latest is not None:
                supplier = self._suppliers.get(latest[1])
                last_supplier_name = supplier.name if supplier else None
                last_unit_price = latest[0].unit_price

            items.append(
                ReorderItem(
                    sku=product.sku,
                    name=product.name,
                    category=product.category,
                    unit=product.unit,
                    current_stock=product.current_stock,
                    reorder_point=product.reorder_point,
                    safety_stock=product.safety_stock,
                    reorder_qty=product.reorder_qty,
                    urgency=urgency,
                    last_supplier_name=last_supplier_name,
                    last_unit_price=last_unit_price,
                )
            )
        items.sort(key=lambda item: _URGENCY_ORDER[item.urgency])
        return items

    # ------------------------------------------------------------------
    # Payload coercion
    # ------------------------------------------------------------------
    @staticmethod
    def _product_from_payload(payload: Mapping[str, Any]) -> Product:
        return Product(
            sku=str(payload["sku"]),
            name=str(payload["name"]),
            category=str(payload.get("category") or ""),
            unit=str(payload.get("unit") or "piece"),
            reorder_point=int(payload.get("reorder_point") or 0),
            reorder_qty=int(payload.get("reorder_qty") or 0),
            current_stock=int(payload.get("current_stock") or 0),
            safety_stock=int(payload.get("safety_stock") or 0),
        )

    @staticmethod
    def _supplier_from_payload(payload: Mapping[str, Any]) -> Supplier:
        rate = payload.get("on_time_delivery_rate")
        response_hours = payload.get("response_time_hours")
        return Supplier(
            id=str(payload["id"]),
            name=str(payload["name"]),
            contact_name=str(payload.get("contact_name") or payload["name"]),
            contact_email=payload.get("contact_email") or None,
            payment_terms=str(payload.get("payment_terms") or ""),
            categories=tuple(payload.get("categories") or ()),
            avg_lead_time_days=int(payload.get("avg_lead_time_days") or 0),
            on_time_delivery_rate=float(rate) if rate is not None else None,
            response_time_hours=float(response_hours) if response_hours is not None else None,
            phone=str(payload.get("phone") or ""),
            account_number=str(payload.get("account_number") or ""),
            notes=str(payload.get("notes") or ""),
        )

    @staticmethod
    def _history_from_payload(payload: Mapping[str, Any]) -> ProductPriceHistory:
        prices = tuple(
            PriceEntry(
                date=date.fromisoformat(str(entry["date"])),
                unit_price=float(entry["unit_price"]),
                qty=int(entry.get("qty") or 0),
                lead_time_days=int(entry.get("lead_time_days") or 0),
                on_time=bool(entry.get("on_time", True)),
            )
            for entry in payload.get("prices", [])
        )
        return ProductPriceHistory(
            sku=str(payload["sku"]),
            supplier_id=str(payload["supplier_id"]),
            prices=prices,
        )


__all__ = [
    "Product",
    "Supplier",
    "PriceEntry",
    "ProductPriceHistory",
    "ReorderItem",
    "ReferenceDataRepository",
]
