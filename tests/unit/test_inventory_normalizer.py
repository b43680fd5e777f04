from __future__ import annotations

from sales_ingest.models.upload_result import Severity
from sales_ingest.normalizers.inventory import normalize_inventory


def _item(**overrides):
    row = {
        "SKU": "A1",
        "Brand": "Gucci",
        "Prezzo di acquisto": "100,00",
        "Prezzo di vendita": "250,00",
        "Categoria": "borse",
        "Collezione": "FW24",
    }
    row.update(overrides)
    return row


def test_valid_item():
    res = normalize_inventory([_item()])
    assert res.success
    assert res.message == "1 products processed out of 1 rows"
    item = res.processed_data[0]
    assert (item.sku, item.brand, item.purchase_price, item.sell_price) == ("A1", "Gucci", 100.0, 250.0)
    assert item.to_dict()["purchasePrice"] == 100.0
    assert item.category == "borse"
    assert item.collection == "FW24"


def test_missing_sell_price_is_a_warning():
    res = normalize_inventory([_item(**{"Prezzo di vendita": ""})])
    assert res.success
    assert res.processed_data[0].sell_price == 0.0
    assert res.issues[0].severity is Severity.WARNING
    assert res.issues[0].error_type == "MISSING_SELL_PRICE"
    assert res.message == "1 products processed out of 1 rows (1 warnings/errors)"
    assert res.warnings == res.errors


def test_duplicate_sku_keeps_first():
    res = normalize_inventory([_item(), _item(Brand="Prada")])
    assert res.processed_count == 1
    assert res.processed_data[0].brand == "Gucci"
    (issue,) = res.issues
    assert issue.error_type == "DUPLICATE_SKU"
    assert issue.row == 3
    assert not issue.is_error


def test_errors_listed_before_warnings():
    res = normalize_inventory([_item(**{"Prezzo di vendita": None}), _item(SKU="B2", Brand="")])
    assert res.success
    assert res.errors[0].startswith("Row 3")
    assert res.errors[1].startswith("Row 2")


def test_invalid_prices_reject_row():
    res = normalize_inventory([
        _item(**{"Prezzo di acquisto": "abc"}),
        _item(SKU="B2", **{"Prezzo di acquisto": "-5"}),
        _item(SKU="C3", **{"Prezzo di vendita": "n/d"}),
    ])
    assert not res.success
    assert [i.error_type for i in res.issues] == ["INVALID_PRICE"] * 3
    assert res.message == "No valid products found in file"


def test_zero_purchase_price_is_accepted():
    res = normalize_inventory([_item(**{"Prezzo di acquisto": 0})])
    assert res.processed_data[0].purchase_price == 0.0


def test_all_rows_missing_brand():
    res = normalize_inventory([_item(Brand=""), _item(SKU="B2", Brand=None)])
    assert not res.success
    assert res.processed_count == 0
    assert [i.field for i in res.issues] == ["Brand", "Brand"]
