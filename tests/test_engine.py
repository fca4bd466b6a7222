"""Tests for the per-category transfer engine."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from datetime import UTC, datetime
from uuid import UUID, uuid4

import pytest
import pytest_asyncio

from conftest import EMAIL, PASSWORD, FakeCloud
from home_cloud_transfer.cloud.client import CloudApiClient
from home_cloud_transfer.models import entities
from home_cloud_transfer.models.entities import SourceEntity
from home_cloud_transfer.models.state import ItemStatus, TransferItemLogRow
from home_cloud_transfer.models.types import Category
from home_cloud_transfer.storage.ledger import TransferLedger
from home_cloud_transfer.transfer.descriptors import DESCRIPTORS, IdMaps
from home_cloud_transfer.transfer.engine import CategoryTransfer
from home_cloud_transfer.transfer.errors import (
    RemoteListError,
    RemoteUnavailableError,
    TransferCancelled,
)
from home_cloud_transfer.transfer.progress import ProgressReporter


@pytest_asyncio.fixture
async def client(cloud: FakeCloud) -> AsyncIterator[CloudApiClient]:
    async with cloud.client() as api:
        result = await api.login(EMAIL, PASSWORD)
        assert result.ok
        yield api


class Harness:
    """Runs one category through a ``CategoryTransfer`` and exposes the outcome."""

    def __init__(self, *, client: CloudApiClient, ledger: TransferLedger) -> None:
        self.ledger = ledger
        self.session = ledger.create_session(
            include_history=False,
            cloud_url=client.base_url,
            cloud_account_email=EMAIL,
            remote_session_credential=client.session_credential,
        )
        self.progress = ProgressReporter()
        self.progress.start(session_id=self.session.id, total_categories=1)
        self.cancel_event = asyncio.Event()
        self._client = client

    async def run(
        self,
        category: Category,
        items: Sequence[SourceEntity],
        id_maps: IdMaps | None = None,
        *,
        include_history: bool = False,
        list_fetch_backoff_s: float = 0.0,
    ) -> list[TransferItemLogRow]:
        self.progress.begin_category(index=0, category=category.value, total_items=len(items))
        engine = CategoryTransfer(
            client=self._client,
            ledger=self.ledger,
            progress=self.progress,
            session_id=self.session.id,
            include_history=include_history,
            cancel_event=self.cancel_event,
            list_fetch_backoff_s=list_fetch_backoff_s,
        )
        await engine.run(DESCRIPTORS[category], items, id_maps or {})
        return self.rows(category)

    def rows(self, category: Category) -> list[TransferItemLogRow]:
        return list(self.ledger.iter_item_logs(session_id=self.session.id, category=category.value))


@pytest.fixture
def harness(client: CloudApiClient, ledger: TransferLedger) -> Harness:
    return Harness(client=client, ledger=ledger)


def _statuses(rows: list[TransferItemLogRow]) -> list[tuple[str | None, ItemStatus]]:
    return [(row.name, row.status) for row in rows]


@pytest.mark.asyncio
async def test_existing_remote_item_is_skipped(cloud: FakeCloud, harness: Harness) -> None:
    """Local [A, B, C] against remote [b]: A and C are created, B is skipped."""
    existing = cloud.seed("api/v1/locations", name="b")
    items = [entities.Location(id=uuid4(), name=name) for name in ("A", "B", "C")]

    rows = await harness.run(Category.locations, items)

    assert _statuses(rows) == [
        ("A", ItemStatus.created),
        ("B", ItemStatus.skipped),
        ("C", ItemStatus.created),
    ]
    assert [body["name"] for body in cloud.created("api/v1/locations")] == ["A", "C"]
    id_map = harness.ledger.id_map(session_id=harness.session.id, category="Locations")
    assert set(id_map) == {item.id for item in items}
    assert id_map[items[1].id] == UUID(existing["id"])
    snapshot = harness.progress.snapshot()
    assert snapshot is not None
    assert (snapshot.category_created_count, snapshot.category_skipped_count) == (2, 1)


@pytest.mark.asyncio
async def test_local_duplicate_names_create_once(cloud: FakeCloud, harness: Harness) -> None:
    items = [entities.Location(id=uuid4(), name=name) for name in ("Garage", " garage ")]

    rows = await harness.run(Category.locations, items)

    assert [row.status for row in rows] == [ItemStatus.created, ItemStatus.skipped]
    assert len(cloud.created("api/v1/locations")) == 1
    assert rows[1].remote_id == rows[0].remote_id


@pytest.mark.asyncio
async def test_rejected_item_is_logged_and_run_continues(
    cloud: FakeCloud,
    harness: Harness,
) -> None:
    cloud.reject_names["Bad"] = "Name contains invalid characters"
    items = [entities.Chore(id=uuid4(), name=name) for name in ("Bad", "Dishes")]

    rows = await harness.run(Category.chores, items)

    assert _statuses(rows) == [("Bad", ItemStatus.failed), ("Dishes", ItemStatus.created)]
    assert rows[0].error_message == "Name contains invalid characters"
    assert rows[0].remote_id is None
    assert rows[1].remote_id is not None


@pytest.mark.asyncio
async def test_logged_items_are_not_posted_again(cloud: FakeCloud, harness: Harness) -> None:
    items = [entities.Location(id=uuid4(), name=name) for name in ("Pantry", "Shed")]
    harness.ledger.log_item(
        session_id=harness.session.id,
        category="Locations",
        source_id=items[0].id,
        status=ItemStatus.created,
        name="Pantry",
        remote_id=uuid4(),
    )

    rows = await harness.run(Category.locations, items)

    assert len(rows) == 2
    assert [body["name"] for body in cloud.created("api/v1/locations")] == ["Shed"]


@pytest.mark.asyncio
async def test_product_references_are_remapped(cloud: FakeCloud, harness: Harness) -> None:
    """Resolved references carry remote ids; unresolved optional ones are omitted."""
    location_id, remote_location_id = uuid4(), uuid4()
    failed_unit_id = uuid4()
    product = entities.Product(
        id=uuid4(),
        name="Milk",
        location_id=location_id,
        quantity_unit_id_stock=failed_unit_id,
        barcodes=[entities.ProductBarcode(barcode="0123456789")],
    )
    id_maps = {Category.locations: {location_id: remote_location_id}}

    rows = await harness.run(Category.products, [product], id_maps)

    assert rows[0].status == ItemStatus.created
    [body] = cloud.created("api/v1/products")
    assert body["locationId"] == str(remote_location_id)
    assert "quantityUnitIdStock" not in body
    barcodes_path = f"api/v1/products/{rows[0].remote_id}/barcodes"
    assert cloud.created(barcodes_path) == [{"barcode": "0123456789"}]


@pytest.mark.asyncio
async def test_contact_cascades_use_parent_remote_id(
    cloud: FakeCloud,
    harness: Harness,
) -> None:
    contact = entities.Contact(
        id=uuid4(),
        first_name="Grace",
        last_name="Hopper",
        phone_numbers=[entities.ContactPhone(phone_number="555-0100", is_primary=True)],
        email_addresses=[entities.ContactEmail(email="grace@example.com")],
    )
    cloud.seed("api/v1/contacts", companyName="Hopper Industries")

    rows = await harness.run(Category.contacts, [contact])

    assert _statuses(rows) == [("Grace Hopper", ItemStatus.created)]
    remote_id = rows[0].remote_id
    assert cloud.created(f"api/v1/contacts/{remote_id}/phones") == [
        {"phoneNumber": "555-0100", "isPrimary": True},
    ]
    assert len(cloud.created(f"api/v1/contacts/{remote_id}/emails")) == 1
    subs = list(harness.ledger.iter_subresource_logs(session_id=harness.session.id))
    assert {(sub.resource, sub.status) for sub in subs} == {
        ("phones", ItemStatus.created),
        ("emails", ItemStatus.created),
    }


@pytest.mark.asyncio
async def test_person_contact_matches_case_insensitively(
    cloud: FakeCloud,
    harness: Harness,
) -> None:
    cloud.seed("api/v1/contacts", firstName="GRACE", lastName="hopper")
    contact = entities.Contact(id=uuid4(), first_name="Grace", last_name="Hopper")

    rows = await harness.run(Category.contacts, [contact])

    assert rows[0].status == ItemStatus.skipped
    assert cloud.created("api/v1/contacts") == []


@pytest.mark.asyncio
async def test_recipe_steps_and_nested_ingredients(cloud: FakeCloud, harness: Harness) -> None:
    """Steps go out in step order; ingredients land under the created step."""
    product_id, remote_product_id = uuid4(), uuid4()
    recipe = entities.Recipe(
        id=uuid4(),
        name="Pancakes",
        steps=[
            entities.RecipeStep(step_order=2, title="Cook"),
            entities.RecipeStep(
                step_order=1,
                title="Mix",
                ingredients=[
                    entities.RecipeIngredient(product_id=product_id, amount=2),
                    entities.RecipeIngredient(product_id=uuid4(), amount=1, note="salt"),
                ],
            ),
        ],
    )
    id_maps = {Category.products: {product_id: remote_product_id}}

    rows = await harness.run(Category.recipes, [recipe], id_maps)

    steps_path = f"api/v1/recipes/{rows[0].remote_id}/steps"
    assert [body["title"] for body in cloud.created(steps_path)] == ["Mix", "Cook"]
    mix_step = cloud.collections[steps_path][0]
    ingredients = cloud.created(f"{steps_path}/{mix_step['id']}/ingredients")
    assert ingredients[0]["productId"] == str(remote_product_id)
    assert "productId" not in ingredients[1]
    subs = list(harness.ledger.iter_subresource_logs(session_id=harness.session.id))
    assert [sub.resource for sub in subs] == ["steps", "ingredients", "ingredients", "steps"]


@pytest.mark.asyncio
async def test_history_only_cascades_follow_scope(cloud: FakeCloud, harness: Harness) -> None:
    equipment = entities.Equipment(
        id=uuid4(),
        name="Furnace",
        maintenance_records=[entities.EquipmentMaintenanceRecord(description="Filter swap")],
    )
    rows = await harness.run(Category.equipment, [equipment])
    assert rows[0].status == ItemStatus.created
    assert cloud.created(f"api/v1/equipment/{rows[0].remote_id}/maintenance") == []

    heater = entities.Equipment(
        id=uuid4(),
        name="Water heater",
        maintenance_records=[entities.EquipmentMaintenanceRecord(description="Flush")],
    )
    rows = await harness.run(Category.equipment, [heater], include_history=True)
    created = rows[-1]
    assert len(cloud.created(f"api/v1/equipment/{created.remote_id}/maintenance")) == 1


@pytest.mark.asyncio
async def test_chore_logs_import_in_one_batch(cloud: FakeCloud, harness: Harness) -> None:
    chore_id, remote_chore_id = uuid4(), uuid4()
    tracked = datetime(2026, 1, 2, tzinfo=UTC)
    logs = [
        entities.ChoreLog(id=uuid4(), chore_id=chore_id, tracked_time=tracked),
        entities.ChoreLog(id=uuid4(), chore_id=uuid4()),
        entities.ChoreLog(id=uuid4(), chore_id=chore_id, skipped=True),
    ]

    rows = await harness.run(
        Category.chore_logs,
        logs,
        {Category.chores: {chore_id: remote_chore_id}},
    )

    remote = str(remote_chore_id)
    assert cloud.created("api/v1/transfer/chore-logs") == [
        [
            {"choreId": remote, "trackedTime": "2026-01-02T00:00:00Z", "wasSkipped": False},
            {"choreId": remote, "wasSkipped": True},
        ],
    ]
    by_name = {row.name: row for row in rows}
    assert by_name["Chore log 2"].status == ItemStatus.failed
    assert by_name["Chore log 2"].error_message == "Chore not found in cloud"
    assert by_name["Chore log 1"].status == ItemStatus.created
    assert by_name["Chore log 3"].status == ItemStatus.created


@pytest.mark.asyncio
async def test_failed_batch_marks_every_entry_failed(cloud: FakeCloud, harness: Harness) -> None:
    chore_id = uuid4()
    cloud.create_status["api/v1/transfer/chore-logs"] = 500
    logs = [entities.ChoreLog(id=uuid4(), chore_id=chore_id) for _ in range(2)]

    rows = await harness.run(Category.chore_logs, logs, {Category.chores: {chore_id: uuid4()}})

    assert [row.status for row in rows] == [ItemStatus.failed, ItemStatus.failed]
    assert {row.error_message for row in rows} == {"api/v1/transfer/chore-logs rejected"}
    snapshot = harness.progress.snapshot()
    assert snapshot is not None and snapshot.category_failed_count == 2


@pytest.mark.asyncio
async def test_home_profile_is_upserted(cloud: FakeCloud, harness: Harness) -> None:
    """The home is written with PUT; its sub-resources are created independently."""
    cloud.create_status["api/v1/home/property-links"] = 400
    home = entities.Home(
        id=uuid4(),
        year_built=1925,
        utilities=[entities.HomeUtility(utility_type="Electric", company_name="City Power")],
        property_links=[entities.PropertyLink(label="County record", url="https://example.com")],
    )

    rows = await harness.run(Category.home, [home])

    assert _statuses(rows) == [("Home", ItemStatus.created)]
    assert rows[0].remote_id is None
    assert cloud.home == {"yearBuilt": 1925}
    assert len(cloud.created("api/v1/home/utilities")) == 1
    subs = {
        sub.resource: sub
        for sub in harness.ledger.iter_subresource_logs(session_id=harness.session.id)
    }
    assert subs["utilities"].status == ItemStatus.created
    assert subs["property-links"].status == ItemStatus.failed
    assert subs["property-links"].error_message == "api/v1/home/property-links rejected"


@pytest.mark.asyncio
async def test_stock_without_remote_product_fails_without_request(
    cloud: FakeCloud,
    harness: Harness,
) -> None:
    product_id, remote_product_id = uuid4(), uuid4()
    entries = [
        entities.StockEntry(id=uuid4(), product_id=uuid4(), amount=1),
        entities.StockEntry(id=uuid4(), product_id=product_id, amount=3, note="top shelf"),
    ]

    id_maps = {Category.products: {product_id: remote_product_id}}

    rows = await harness.run(Category.stock, entries, id_maps)

    assert _statuses(rows) == [("Stock 1", ItemStatus.failed), ("Stock 2", ItemStatus.created)]
    assert rows[0].error_message == "Product not found in cloud"
    [body] = cloud.created("api/v1/stock")
    assert body["productId"] == str(remote_product_id)
    assert body["amount"] == 3


@pytest.mark.asyncio
async def test_calendar_events_match_on_title_and_instant(
    cloud: FakeCloud,
    harness: Harness,
) -> None:
    cloud.seed("api/v1/calendar/events", title="Dentist", startTimeUtc="2026-03-01T09:00:00Z")
    start = datetime(2026, 3, 1, 9, tzinfo=UTC)
    events = [
        entities.CalendarEvent(id=uuid4(), title="dentist", start_time_utc=start),
        entities.CalendarEvent(
            id=uuid4(),
            title="Dentist",
            start_time_utc=start.replace(hour=10),
        ),
    ]

    rows = await harness.run(Category.calendar_events, events)

    assert [row.status for row in rows] == [ItemStatus.skipped, ItemStatus.created]


@pytest.mark.asyncio
async def test_list_failure_raises_before_any_write(cloud: FakeCloud, harness: Harness) -> None:
    cloud.list_status["api/v1/locations"] = 500
    items = [entities.Location(id=uuid4(), name="Pantry")]

    with pytest.raises(RemoteListError):
        await harness.run(Category.locations, items)

    assert harness.rows(Category.locations) == []
    assert cloud.created("api/v1/locations") == []


@pytest.mark.asyncio
async def test_unreachable_cloud_is_fatal(cloud: FakeCloud, harness: Harness) -> None:
    cloud.offline = True
    items = [entities.Chore(id=uuid4(), name="Dishes")]

    with pytest.raises(RemoteUnavailableError):
        await harness.run(Category.chores, items)

    assert harness.rows(Category.chores) == []


@pytest.mark.asyncio
async def test_cancel_stops_before_next_item(cloud: FakeCloud, harness: Harness) -> None:
    items = [entities.Location(id=uuid4(), name=name) for name in ("Pantry", "Shed")]

    def _cancel_after_first(_path: str, _body: dict[str, object]) -> None:
        harness.cancel_event.set()

    cloud.on_create = _cancel_after_first

    with pytest.raises(TransferCancelled):
        await harness.run(Category.locations, items)

    rows = harness.rows(Category.locations)
    assert _statuses(rows) == [("Pantry", ItemStatus.created)]
    assert isinstance(rows[0].remote_id, UUID)


@pytest.mark.asyncio
async def test_remote_rows_without_key_fields_never_match(
    cloud: FakeCloud,
    harness: Harness,
) -> None:
    """A remote row with a null name neither breaks the list nor matches anything."""
    cloud.seed("api/v1/locations", name=None)
    garage = cloud.seed("api/v1/locations", name="Garage")
    cloud.seed("api/v1/todoitems", reason=None)
    items = [entities.Location(id=uuid4(), name=name) for name in ("Attic", "Garage")]

    rows = await harness.run(Category.locations, items)
    todo_rows = await harness.run(
        Category.todo_items,
        [entities.TodoItem(id=uuid4(), reason="Fix gate")],
    )

    assert _statuses(rows) == [("Attic", ItemStatus.created), ("Garage", ItemStatus.skipped)]
    assert rows[1].remote_id == UUID(garage["id"])
    assert [row.status for row in todo_rows] == [ItemStatus.created]


@pytest.mark.asyncio
async def test_cancel_during_list_backoff(cloud: FakeCloud, harness: Harness) -> None:
    """Cancelling while the list fetch backs off does not wait for the retries."""
    cloud.offline = True
    asyncio.get_running_loop().call_later(0.05, harness.cancel_event.set)
    items = [entities.Location(id=uuid4(), name="Pantry")]

    with pytest.raises(TransferCancelled):
        await asyncio.wait_for(
            harness.run(Category.locations, items, list_fetch_backoff_s=30.0),
            timeout=5,
        )

    assert harness.rows(Category.locations) == []
