import os
import sys
from datetime import date

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from repositories.reference_data_repo import (
    PriceEntry,
    Product,
    ProductPriceHistory,
    ReferenceDataRepository,
    Supplier,
)
from utils.reference_loader import (
    clear_reference_cache,
    load_reference_dataset,
    load_reference_records,
)


@pytest.fixture(scope="module")
def reference():
    return ReferenceDataRepository.from_default(default_contact_email="supplier-sim@example.com")


def test_default_dataset_loads_suppliers_and_products(reference):
    rs = reference.get_supplier("sup-001")

    assert rs.name == "RS Components"
    assert rs.payment_terms == "Net 30"
    assert rs.on_time_delivery_rate == pytest.approx(0.96)
    assert len(reference.list_suppliers()) == 6
    assert len(reference.list_products()) == 12
    assert reference.get_product("HB-M10X50-A480").current_stock == 145
    assert reference.get_supplier("sup-999") is None


def test_supplier_email_falls_back_to_shared_mailbox(reference):
    assert reference.supplier_email(reference.get_supplier("sup-002")) == "supplier-sim@example.com"

    own = Supplier(id="x", name="X", contact_name="X", contact_email="x@example.com", payment_terms="Net 30")
    assert reference.supplier_email(own) == "x@example.com"


def test_suppliers_for_categories(reference):
    ids = [s.id for s in reference.suppliers_for_categories(["Valves"])]

    assert ids == ["sup-004"]
    assert {s.id for s in reference.suppliers_for_categories(["Cable", "Hoses"])} == {
        "sup-004",
        "sup-005",
    }


def test_latest_price_history_entry(reference):
    history = reference.price_history("HB-M10X50-A480", "sup-001")

    assert history.latest.date == date(2025, 12, 15)
    assert history.latest.unit_price == pytest.approx(0.42)
    assert reference.price_history("HB-M10X50-A480", "sup-999") is None
    assert {h.supplier_id for h in reference.history_for_product("HB-M10X50-A480")} >= {
        "sup-001",
        "sup-002",
        "sup-003",
        "sup-006",
    }


def test_on_time_rates_skip_unknown_suppliers(reference):
    rates = reference.on_time_rates(["sup-001", "sup-002", "sup-999"])

    assert rates == {"sup-001": pytest.approx(0.96), "sup-002": pytest.approx(0.82)}


def test_reorder_list_orders_critical_first(reference):
    items = reference.reorder_list()

    assert [(item.sku, item.urgency) for item in items] == [
        ("BV-DN25-PN16", "critical"),
        ("CB-6MM-100M", "critical"),
        ("HB-M10X50-A480", "warning"),
        ("BV-DN50-PN16-SS", "warning"),
    ]


def test_reorder_list_uses_most_recent_purchase():
    products = [
        Product(
            sku="W-1", name="Widget", category="Fasteners", unit="piece",
            reorder_point=10, reorder_qty=50, current_stock=10, safety_stock=2,
        )
    ]
    suppliers = [
        Supplier(id="a", name="Alpha", contact_name="A", contact_email=None, payment_terms="Net 30"),
        Supplier(id="b", name="Beta", contact_name="B", contact_email=None, payment_terms="Net 30"),
    ]
    history = [
        ProductPriceHistory("W-1", "a", (PriceEntry(date(2025, 1, 1), 1.10, 50, 5, True),)),
        ProductPriceHistory("W-1", "b", (PriceEntry(date(2025, 6, 1), 0.95, 50, 4, True),)),
    ]
    repo = ReferenceDataRepository(products=products, suppliers=suppliers, price_history=history)

    (item,) = repo.reorder_list()

    assert item.urgency == "warning"
    assert item.last_supplier_name == "Beta"
    assert item.last_unit_price == pytest.approx(0.95)


def test_missing_dataset_loads_as_empty():
    clear_reference_cache()

    assert load_reference_dataset("does_not_exist") == {}
    with pytest.raises(ValueError):
        load_reference_dataset("  ")


def test_records_skip_malformed_entries(tmp_path, caplog):
    (tmp_path / "products.json").write_text(
        '{"products": [{"sku": "W-1"}, "not-a-record"]}', encoding="utf-8"
    )
    (tmp_path / "suppliers.json").write_text('{"suppliers": {"id": "a"}}', encoding="utf-8")

    assert load_reference_records("products", tmp_path) == [{"sku": "W-1"}]
    assert load_reference_records("suppliers", tmp_path) == []
    assert "Skipped 1 malformed records" in caplog.text


def test_repository_from_empty_directory(tmp_path):
    repo = ReferenceDataRepository.from_default(base_path=str(tmp_path))

    assert repo.list_products() == []
    assert repo.list_suppliers() == []
    assert repo.reorder_list() == []
