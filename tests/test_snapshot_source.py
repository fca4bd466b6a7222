"""Tests for reading the household JSON export."""

from __future__ import annotations

import json
from pathlib import Path
from uuid import uuid4

import pytest
from pydantic import ValidationError

from home_cloud_transfer.models.types import Category
from home_cloud_transfer.source.reader import SnapshotEntitySource


def _write_export(path: Path) -> dict[str, str]:
    ids = {"pantry": str(uuid4()), "milk": str(uuid4()), "home": str(uuid4())}
    payload = {
        "exportedBy": "self-hosted 4.2",
        "locations": [{"id": ids["pantry"], "name": "Pantry", "sortOrder": 2, "rowVersion": 7}],
        "products": [
            {
                "id": ids["milk"],
                "name": "Milk",
                "locationId": ids["pantry"],
                "barcodes": [{"barcode": "4006381333931"}],
            },
        ],
        "stock": [{"id": str(uuid4()), "productId": ids["milk"], "amount": 1.5}],
        "home": {"id": ids["home"], "yearBuilt": 1984, "utilities": [{"utilityType": "Gas"}]},
    }
    path.write_text(json.dumps(payload), encoding="utf-8")
    return ids


@pytest.mark.asyncio
async def test_reads_camel_case_export(tmp_path: Path) -> None:
    """Unknown columns are ignored and nested children are parsed."""
    export = tmp_path / "household.json"
    ids = _write_export(export)
    source = SnapshotEntitySource(path=export)

    [location] = await source.entities(Category.locations)
    [product] = await source.entities(Category.products)
    [home] = await source.entities(Category.home)

    assert location.model_dump()["sort_order"] == 2
    assert str(product.model_dump()["location_id"]) == ids["pantry"]
    assert product.model_dump()["barcodes"][0]["barcode"] == "4006381333931"
    assert str(home.id) == ids["home"]
    assert await source.entities(Category.chores) == []


@pytest.mark.asyncio
async def test_summary_counts(tmp_path: Path) -> None:
    export = tmp_path / "household.json"
    _write_export(export)

    summary = await SnapshotEntitySource(path=export).summary()

    assert summary.locations == 1
    assert summary.products == 1
    assert summary.stock_entries == 1
    assert summary.contacts == 0


@pytest.mark.asyncio
async def test_missing_export_is_an_empty_household(tmp_path: Path) -> None:
    source = SnapshotEntitySource(path=tmp_path / "absent.json")

    assert await source.entities(Category.home) == []
    summary = await source.summary()
    assert set(summary.model_dump().values()) == {0}


@pytest.mark.asyncio
async def test_malformed_export_raises(tmp_path: Path) -> None:
    export = tmp_path / "household.json"
    export.write_text(json.dumps({"locations": [{"name": "No id"}]}), encoding="utf-8")

    with pytest.raises(ValidationError):
        await SnapshotEntitySource(path=export).entities(Category.locations)
