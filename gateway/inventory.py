"""Static, read-only inventory table."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Iterable


@dataclass(frozen=True)
class InventoryItem:
    sku: str
    name: str
    category: str
    quantity: int
    unit: str
    reorder_point: int
    location: str
    stock_status: str
    needs_reorder: bool

    def as_dict(self) -> dict:
        return asdict(self)


SEED_ITEMS: tuple[InventoryItem, ...] = (
    InventoryItem(
        sku="FBS-001",
        name="Fetal Bovine Serum - US Origin",
        category="FBS",
        quantity=150,
        unit="bottles (500ml)",
        reorder_point=50,
        location="Cold Storage A1",
        stock_status="NORMAL",
        needs_reorder=False,
    ),
    InventoryItem(
        sku="FBS-002",
        name="Fetal Bovine Serum - USDA Approved",
        category="FBS",
        quantity=25,
        unit="bottles (500ml)",
        reorder_point=30,
        location="Cold Storage A2",
        stock_status="LOW",
        needs_reorder=True,
    ),
    InventoryItem(
        sku="MED-001",
        name="DMEM Media",
        category="MEDIA",
        quantity=200,
        unit="bottles (1L)",
        reorder_point=50,
        location="Media Storage B1",
        stock_status="NORMAL",
        needs_reorder=False,
    ),
    InventoryItem(
        sku="PLS-001",
        name="Plastic Pipette Tips",
        category="PLASTICS",
        quantity=45,
        unit="boxes",
        reorder_point=100,
        location="Supply Cabinet C1",
        stock_status="LOW",
        needs_reorder=True,
    ),
)


class Inventory:
    """Lookup over a fixed set of items keyed by upper-cased SKU."""

    def __init__(self, items: Iterable[InventoryItem] = SEED_ITEMS) -> None:
        self._items: dict[str, InventoryItem] = {}
        for item in items:
            key = item.sku.upper()
            if key in self._items:
                raise ValueError(f"Duplicate SKU: {item.sku}")
            self._items[key] = item

    def __len__(self) -> int:
        return len(self._items)

    def all(self) -> list[InventoryItem]:
        return list(self._items.values())

    def check(self, sku: str | None = None, category: str | None = None) -> list[InventoryItem]:
        """Items matching ``sku`` if given, else ``category``, else everything."""
        if sku:
            item = self._items.get(sku.strip().upper())
            return [item] if item else []
        if category:
            wanted = category.strip().upper()
            return [i for i in self._items.values() if i.category.upper() == wanted]
        return self.all()

    def low_stock(self) -> list[InventoryItem]:
        return [i for i in self._items.values() if i.needs_reorder or i.stock_status == "LOW"]
