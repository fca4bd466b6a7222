"""Declarative per-category transfer descriptors.

Each category is described by the data the engine needs: where its remote
collection lives, how to recognise an existing remote duplicate, how to build
the create request (remapping references through the id maps of earlier
categories), and which sub-resources cascade from a created parent.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from home_cloud_transfer.cloud import schemas
from home_cloud_transfer.models import entities
from home_cloud_transfer.models.base import RemoteModel
from home_cloud_transfer.models.entities import SubEntity
from home_cloud_transfer.models.types import Category
from home_cloud_transfer.transfer.errors import UnresolvedReferenceError
from home_cloud_transfer.utils.matching import MatchKey, match_key

type IdMaps = Mapping[Category, Mapping[UUID, UUID]]
type RemoteParents = tuple[UUID | None, ...]
type RequestBuilder = Callable[[Any, IdMaps], BaseModel]
type KeyFn = Callable[[Any], Iterable[MatchKey]]


class TransferMode(StrEnum):
    """How a category reaches the remote service."""

    create = "create"
    batch = "batch"
    singleton = "singleton"


@dataclass(frozen=True)
class SubResourceCascade:
    """Child rows created against the remote id of their parent.

    Attributes:
        resource: Name recorded in the sub-resource ledger.
        children: Returns the child rows of a parent entity.
        path: Builds the endpoint from the remote ids of all ancestors.
        build_request: Builds the create request for one child.
        history_only: Only cascaded when history is in scope.
        nested: Cascades run against each created child.
    """

    resource: str
    children: Callable[[Any], Sequence[SubEntity]]
    path: Callable[[RemoteParents], str]
    build_request: RequestBuilder
    history_only: bool = False
    nested: tuple[SubResourceCascade, ...] = ()


@dataclass(frozen=True)
class CategoryDescriptor:
    """Everything the engine needs to transfer one category."""

    category: Category
    endpoint: str
    build_request: RequestBuilder
    display_name: Callable[[Any, int], str]
    mode: TransferMode = TransferMode.create
    remote_model: type[RemoteModel] | None = None
    local_keys: KeyFn | None = None
    remote_keys: KeyFn | None = None
    cascades: tuple[SubResourceCascade, ...] = field(default=())

    @property
    def checks_duplicates(self) -> bool:
        return self.remote_model is not None


def copy_fields[M: BaseModel](source: BaseModel, model: type[M], **overrides: Any) -> M:
    """Build ``model`` from the same-named fields of ``source``.

    Args:
        source: Local entity.
        model: Request model to build.
        **overrides: Values replacing copied fields (remapped references).

    Returns:
        Validated request model.
    """
    data = {
        name: getattr(source, name)
        for name in model.model_fields
        if name in type(source).model_fields
    }
    data.update(overrides)
    return model.model_validate(data)


def remap(id_maps: IdMaps, category: Category, local_id: UUID | None) -> UUID | None:
    """Translate a local reference into the remote id created for it.

    A reference whose target was never created resolves to None, so the
    remote item is created without it.
    """
    if local_id is None:
        return None
    return id_maps.get(category, {}).get(local_id)


def require(id_maps: IdMaps, category: Category, local_id: UUID, message: str) -> UUID:
    """Like ``remap`` for references the remote service cannot do without.

    Raises:
        UnresolvedReferenceError: If the target has no remote id.
    """
    remote_id = remap(id_maps, category, local_id)
    if remote_id is None:
        raise UnresolvedReferenceError(message)
    return remote_id


def _name_keys(entity: Any) -> list[MatchKey]:
    return [match_key(entity.name)]


def _by_name(entity: Any, _index: int) -> str:
    return str(entity.name)


def _copy_to[M: BaseModel](model: type[M]) -> RequestBuilder:
    def _build(entity: Any, _id_maps: IdMaps) -> BaseModel:
        return copy_fields(entity, model)

    return _build


def _named(category: Category, endpoint: str, model: type[BaseModel]) -> CategoryDescriptor:
    """Descriptor for reference data matched by name with no references."""
    return CategoryDescriptor(
        category=category,
        endpoint=endpoint,
        build_request=_copy_to(model),
        display_name=_by_name,
        remote_model=schemas.RemoteNamed,
        local_keys=_name_keys,
        remote_keys=_name_keys,
    )


# Contacts


def _contact_keys(contact: Any) -> list[MatchKey]:
    keys: list[MatchKey] = []
    if contact.company_name:
        keys.append(match_key("company", contact.company_name))
    if contact.first_name:
        keys.append(match_key("person", contact.first_name, contact.last_name))
    return keys


def _contact_sub(
    resource: str,
    children: Callable[[Any], Sequence[SubEntity]],
    model: type[BaseModel],
) -> SubResourceCascade:
    return SubResourceCascade(
        resource=resource,
        children=children,
        path=lambda ids: f"api/v1/contacts/{ids[0]}/{resource}",
        build_request=_copy_to(model),
    )


CONTACTS = CategoryDescriptor(
    category=Category.contacts,
    endpoint="api/v1/contacts",
    build_request=_copy_to(schemas.ContactCreate),
    display_name=lambda contact, _index: contact.display_name,
    remote_model=schemas.RemoteContact,
    local_keys=_contact_keys,
    remote_keys=_contact_keys,
    cascades=(
        _contact_sub("addresses", lambda c: c.addresses, schemas.ContactAddressCreate),
        _contact_sub("phones", lambda c: c.phone_numbers, schemas.ContactPhoneCreate),
        _contact_sub("emails", lambda c: c.email_addresses, schemas.ContactEmailCreate),
        _contact_sub("social-media", lambda c: c.social_media, schemas.ContactSocialMediaCreate),
    ),
)


# Products


def _product_request(product: entities.Product, id_maps: IdMaps) -> BaseModel:
    return copy_fields(
        product,
        schemas.ProductCreate,
        location_id=remap(id_maps, Category.locations, product.location_id),
        quantity_unit_id_purchase=remap(
            id_maps, Category.quantity_units, product.quantity_unit_id_purchase,
        ),
        quantity_unit_id_stock=remap(
            id_maps, Category.quantity_units, product.quantity_unit_id_stock,
        ),
        product_group_id=remap(id_maps, Category.product_groups, product.product_group_id),
        shopping_location_id=remap(
            id_maps, Category.shopping_locations, product.shopping_location_id,
        ),
    )


PRODUCTS = CategoryDescriptor(
    category=Category.products,
    endpoint="api/v1/products",
    build_request=_product_request,
    display_name=_by_name,
    remote_model=schemas.RemoteNamed,
    local_keys=_name_keys,
    remote_keys=_name_keys,
    cascades=(
        SubResourceCascade(
            resource="barcodes",
            children=lambda p: p.barcodes,
            path=lambda ids: f"api/v1/products/{ids[0]}/barcodes",
            build_request=_copy_to(schemas.ProductBarcodeCreate),
        ),
    ),
)


# Equipment


EQUIPMENT = CategoryDescriptor(
    category=Category.equipment,
    endpoint="api/v1/equipment",
    build_request=lambda item, id_maps: copy_fields(
        item,
        schemas.EquipmentCreate,
        category_id=remap(id_maps, Category.equipment_categories, item.category_id),
    ),
    display_name=_by_name,
    remote_model=schemas.RemoteNamed,
    local_keys=_name_keys,
    remote_keys=_name_keys,
    cascades=(
        SubResourceCascade(
            resource="maintenance",
            children=lambda e: e.maintenance_records,
            path=lambda ids: f"api/v1/equipment/{ids[0]}/maintenance",
            build_request=_copy_to(schemas.EquipmentMaintenanceCreate),
            history_only=True,
        ),
        SubResourceCascade(
            resource="usage",
            children=lambda e: e.usage_logs,
            path=lambda ids: f"api/v1/equipment/{ids[0]}/usage",
            build_request=_copy_to(schemas.EquipmentUsageCreate),
            history_only=True,
        ),
    ),
)


# Vehicles


def _vehicle_keys(vehicle: Any) -> list[MatchKey]:
    return [match_key(vehicle.year, vehicle.make, vehicle.model)]


VEHICLES = CategoryDescriptor(
    category=Category.vehicles,
    endpoint="api/v1/vehicles",
    build_request=_copy_to(schemas.VehicleCreate),
    display_name=lambda vehicle, _index: vehicle.display_name,
    remote_model=schemas.RemoteVehicle,
    local_keys=_vehicle_keys,
    remote_keys=_vehicle_keys,
    cascades=(
        SubResourceCascade(
            resource="schedules",
            children=lambda v: v.maintenance_schedules,
            path=lambda ids: f"api/v1/vehicles/{ids[0]}/schedules",
            build_request=_copy_to(schemas.VehicleScheduleCreate),
        ),
        SubResourceCascade(
            resource="mileage",
            children=lambda v: v.mileage_logs,
            path=lambda ids: f"api/v1/vehicles/{ids[0]}/mileage",
            build_request=_copy_to(schemas.VehicleMileageCreate),
            history_only=True,
        ),
        SubResourceCascade(
            resource="maintenance",
            children=lambda v: v.maintenance_records,
            path=lambda ids: f"api/v1/vehicles/{ids[0]}/maintenance",
            build_request=_copy_to(schemas.VehicleMaintenanceCreate),
            history_only=True,
        ),
    ),
)


# Recipes


def _ingredient_request(ingredient: entities.RecipeIngredient, id_maps: IdMaps) -> BaseModel:
    return copy_fields(
        ingredient,
        schemas.RecipeIngredientCreate,
        product_id=remap(id_maps, Category.products, ingredient.product_id),
        quantity_unit_id=remap(id_maps, Category.quantity_units, ingredient.quantity_unit_id),
    )


RECIPES = CategoryDescriptor(
    category=Category.recipes,
    endpoint="api/v1/recipes",
    build_request=_copy_to(schemas.RecipeCreate),
    display_name=_by_name,
    remote_model=schemas.RemoteNamed,
    local_keys=_name_keys,
    remote_keys=_name_keys,
    cascades=(
        SubResourceCascade(
            resource="steps",
            children=lambda r: sorted(r.steps, key=lambda step: step.step_order),
            path=lambda ids: f"api/v1/recipes/{ids[0]}/steps",
            build_request=_copy_to(schemas.RecipeStepCreate),
            nested=(
                SubResourceCascade(
                    resource="ingredients",
                    children=lambda step: step.ingredients,
                    path=lambda ids: f"api/v1/recipes/{ids[0]}/steps/{ids[1]}/ingredients",
                    build_request=_ingredient_request,
                ),
            ),
        ),
    ),
)


# Chores and chore logs


def _chore_log_request(log: entities.ChoreLog, id_maps: IdMaps) -> BaseModel:
    return schemas.ChoreLogImport(
        chore_id=require(id_maps, Category.chores, log.chore_id, "Chore not found in cloud"),
        tracked_time=log.tracked_time,
        was_skipped=log.skipped,
    )


CHORE_LOGS = CategoryDescriptor(
    category=Category.chore_logs,
    endpoint="api/v1/transfer/chore-logs",
    build_request=_chore_log_request,
    display_name=lambda _log, index: f"Chore log {index + 1}",
    mode=TransferMode.batch,
)


# Todo items, shopping lists, storage bins


def _reason_keys(item: Any) -> list[MatchKey]:
    return [match_key(item.reason)]


TODO_ITEMS = CategoryDescriptor(
    category=Category.todo_items,
    endpoint="api/v1/todoitems",
    build_request=_copy_to(schemas.TodoItemCreate),
    display_name=lambda item, _index: item.reason,
    remote_model=schemas.RemoteTodoItem,
    local_keys=_reason_keys,
    remote_keys=_reason_keys,
)

SHOPPING_LISTS = CategoryDescriptor(
    category=Category.shopping_lists,
    endpoint="api/v1/shoppinglists",
    build_request=_copy_to(schemas.ShoppingListCreate),
    display_name=_by_name,
    remote_model=schemas.RemoteNamed,
    local_keys=_name_keys,
    remote_keys=_name_keys,
    cascades=(
        SubResourceCascade(
            resource="items",
            children=lambda shopping_list: shopping_list.items,
            path=lambda ids: f"api/v1/shoppinglists/{ids[0]}/items",
            build_request=lambda item, id_maps: copy_fields(
                item,
                schemas.ShoppingListItemCreate,
                product_id=remap(id_maps, Category.products, item.product_id),
            ),
        ),
    ),
)


def _bin_keys(storage_bin: Any) -> list[MatchKey]:
    return [match_key(storage_bin.category, storage_bin.short_code)]


STORAGE_BINS = CategoryDescriptor(
    category=Category.storage_bins,
    endpoint="api/v1/storage-bins",
    build_request=lambda storage_bin, id_maps: copy_fields(
        storage_bin,
        schemas.StorageBinCreate,
        location_id=remap(id_maps, Category.locations, storage_bin.location_id),
    ),
    display_name=lambda storage_bin, _index: storage_bin.display_name,
    remote_model=schemas.RemoteStorageBin,
    local_keys=_bin_keys,
    remote_keys=_bin_keys,
)


# Home profile


HOME = CategoryDescriptor(
    category=Category.home,
    endpoint="api/v1/home",
    build_request=_copy_to(schemas.HomeUpdate),
    display_name=lambda _home, _index: "Home",
    mode=TransferMode.singleton,
    cascades=(
        SubResourceCascade(
            resource="utilities",
            children=lambda home: home.utilities,
            path=lambda _ids: "api/v1/home/utilities",
            build_request=_copy_to(schemas.HomeUtilityCreate),
        ),
        SubResourceCascade(
            resource="property-links",
            children=lambda home: home.property_links,
            path=lambda _ids: "api/v1/home/property-links",
            build_request=_copy_to(schemas.PropertyLinkCreate),
        ),
    ),
)


# Calendar and stock


def _event_keys(event: Any) -> list[MatchKey]:
    return [match_key(event.title, event.start_time_utc)]


CALENDAR_EVENTS = CategoryDescriptor(
    category=Category.calendar_events,
    endpoint="api/v1/calendar/events",
    build_request=_copy_to(schemas.CalendarEventCreate),
    display_name=lambda event, _index: event.title,
    remote_model=schemas.RemoteCalendarEvent,
    local_keys=_event_keys,
    remote_keys=_event_keys,
)


def _stock_request(entry: entities.StockEntry, id_maps: IdMaps) -> BaseModel:
    return copy_fields(
        entry,
        schemas.StockEntryCreate,
        product_id=require(
            id_maps, Category.products, entry.product_id, "Product not found in cloud",
        ),
        location_id=remap(id_maps, Category.locations, entry.location_id),
    )


STOCK = CategoryDescriptor(
    category=Category.stock,
    endpoint="api/v1/stock",
    build_request=_stock_request,
    display_name=lambda _entry, index: f"Stock {index + 1}",
)


DESCRIPTORS: Mapping[Category, CategoryDescriptor] = {
    descriptor.category: descriptor
    for descriptor in (
        _named(Category.locations, "api/v1/locations", schemas.LocationCreate),
        _named(Category.quantity_units, "api/v1/quantity-units", schemas.QuantityUnitCreate),
        _named(Category.product_groups, "api/v1/productgroups", schemas.ProductGroupCreate),
        _named(
            Category.shopping_locations,
            "api/v1/shoppinglocations",
            schemas.ShoppingLocationCreate,
        ),
        _named(
            Category.equipment_categories,
            "api/v1/equipment/categories",
            schemas.EquipmentCategoryCreate,
        ),
        _named(Category.contact_tags, "api/v1/contacts/tags", schemas.ContactTagCreate),
        CONTACTS,
        PRODUCTS,
        EQUIPMENT,
        VEHICLES,
        RECIPES,
        _named(Category.chores, "api/v1/chores", schemas.ChoreCreate),
        CHORE_LOGS,
        TODO_ITEMS,
        SHOPPING_LISTS,
        STORAGE_BINS,
        HOME,
        CALENDAR_EVENTS,
        STOCK,
    )
}
