"""Local household entities read from the self-hosted data store."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID, uuid4

from pydantic import ConfigDict, Field

from home_cloud_transfer.models.base import WireModel


class SourceEntity(WireModel):
    """Base for exported entities; store-internal columns are ignored."""

    model_config = ConfigDict(extra="ignore")

    id: UUID


class SubEntity(SourceEntity):
    """Child row owned by a parent entity."""

    id: UUID = Field(default_factory=uuid4)


class Location(SourceEntity):
    name: str = Field(min_length=1)
    description: str | None = None
    sort_order: int = 0


class QuantityUnit(SourceEntity):
    name: str = Field(min_length=1)
    name_plural: str | None = None
    description: str | None = None


class ProductGroup(SourceEntity):
    name: str = Field(min_length=1)
    description: str | None = None


class ShoppingLocation(SourceEntity):
    name: str = Field(min_length=1)
    description: str | None = None


class EquipmentCategory(SourceEntity):
    name: str = Field(min_length=1)
    description: str | None = None


class ContactTag(SourceEntity):
    name: str = Field(min_length=1)


class ContactAddress(SubEntity):
    tag: str | None = None
    is_primary: bool = False
    label: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state_province: str | None = None
    postal_code: str | None = None
    country: str | None = None


class ContactPhone(SubEntity):
    phone_number: str
    tag: str | None = None
    is_primary: bool = False
    label: str | None = None


class ContactEmail(SubEntity):
    email: str
    tag: str | None = None
    is_primary: bool = False
    label: str | None = None


class ContactSocialMedia(SubEntity):
    service: str
    username: str | None = None
    profile_url: str | None = None


class Contact(SourceEntity):
    first_name: str | None = None
    last_name: str | None = None
    company_name: str | None = None
    middle_name: str | None = None
    preferred_name: str | None = None
    title: str | None = None
    birth_year: int | None = None
    birth_month: int | None = Field(default=None, ge=1, le=12)
    birth_day: int | None = Field(default=None, ge=1, le=31)
    birth_date_precision: str | None = None
    gender: str | None = None
    notes: str | None = None

    addresses: list[ContactAddress] = Field(default_factory=list)
    phone_numbers: list[ContactPhone] = Field(default_factory=list)
    email_addresses: list[ContactEmail] = Field(default_factory=list)
    social_media: list[ContactSocialMedia] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        """Company name for organisations, otherwise the person's full name."""
        if self.company_name:
            return self.company_name
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class ProductBarcode(SubEntity):
    barcode: str = Field(min_length=1)
    note: str | None = None


class Product(SourceEntity):
    name: str = Field(min_length=1)
    description: str | None = None
    location_id: UUID | None = None
    quantity_unit_id_purchase: UUID | None = None
    quantity_unit_id_stock: UUID | None = None
    quantity_unit_factor_purchase_to_stock: float = 1.0
    product_group_id: UUID | None = None
    shopping_location_id: UUID | None = None
    min_stock_amount: float = 0.0
    default_best_before_days: int = 0
    tracks_best_before_date: bool = False

    barcodes: list[ProductBarcode] = Field(default_factory=list)


class EquipmentMaintenanceRecord(SubEntity):
    description: str
    completed_date: date | None = None
    usage_at_completion: float | None = None
    notes: str | None = None


class EquipmentUsageLog(SubEntity):
    usage_date: date = Field(alias="date")
    reading: float
    notes: str | None = None


class Equipment(SourceEntity):
    name: str = Field(min_length=1)
    description: str | None = None
    manufacturer: str | None = None
    model_number: str | None = None
    serial_number: str | None = None
    purchase_date: date | None = None
    location: str | None = None
    warranty_expiration_date: date | None = None
    notes: str | None = None
    category_id: UUID | None = None

    maintenance_records: list[EquipmentMaintenanceRecord] = Field(default_factory=list)
    usage_logs: list[EquipmentUsageLog] = Field(default_factory=list)


class VehicleMaintenanceSchedule(SubEntity):
    name: str
    description: str | None = None
    interval_miles: int | None = None
    interval_months: int | None = None
    notes: str | None = None
    is_active: bool = True


class VehicleMileageLog(SubEntity):
    mileage: int = Field(ge=0)
    reading_date: date
    notes: str | None = None


class VehicleMaintenanceRecord(SubEntity):
    description: str
    completed_date: date | None = None
    cost: float | None = None
    mileage_at_completion: int | None = None
    service_provider: str | None = None
    notes: str | None = None


class Vehicle(SourceEntity):
    year: int
    make: str
    model: str
    trim: str | None = None
    vin: str | None = None
    license_plate: str | None = None
    color: str | None = None
    purchase_date: date | None = None
    purchase_price: float | None = None
    current_mileage: int | None = None
    notes: str | None = None

    maintenance_schedules: list[VehicleMaintenanceSchedule] = Field(default_factory=list)
    mileage_logs: list[VehicleMileageLog] = Field(default_factory=list)
    maintenance_records: list[VehicleMaintenanceRecord] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return f"{self.year} {self.make} {self.model}"


class RecipeIngredient(SubEntity):
    product_id: UUID | None = None
    amount: float = 0.0
    quantity_unit_id: UUID | None = None
    note: str | None = None
    only_check_single_unit_in_stock: bool = False


class RecipeStep(SubEntity):
    step_order: int = 0
    title: str | None = None
    description: str | None = None
    instructions: str | None = None

    ingredients: list[RecipeIngredient] = Field(default_factory=list)


class Recipe(SourceEntity):
    name: str = Field(min_length=1)
    servings: int | None = None
    source: str | None = None
    notes: str | None = None
    attribution: str | None = None
    is_meal: bool = False

    steps: list[RecipeStep] = Field(default_factory=list)


class Chore(SourceEntity):
    name: str = Field(min_length=1)
    description: str | None = None
    period_type: str | None = None
    period_days: int | None = None


class ChoreLog(SourceEntity):
    chore_id: UUID
    tracked_time: datetime | None = None
    skipped: bool = False


class TodoItem(SourceEntity):
    reason: str = Field(min_length=1)
    description: str | None = None
    task_type: str | None = None


class ShoppingListItem(SubEntity):
    product_id: UUID | None = None
    amount: float = 1.0
    product_name: str | None = None
    note: str | None = None
    is_purchased: bool = False


class ShoppingList(SourceEntity):
    name: str = Field(min_length=1)
    description: str | None = None

    items: list[ShoppingListItem] = Field(default_factory=list)


class StorageBin(SourceEntity):
    category: str
    short_code: str
    description: str | None = None
    location_id: UUID | None = None

    @property
    def display_name(self) -> str:
        return f"{self.category}: {self.short_code}"


class HomeUtility(SubEntity):
    utility_type: str
    company_name: str | None = None
    account_number: str | None = None
    phone_number: str | None = None
    website: str | None = None
    login_email: str | None = None
    notes: str | None = None


class PropertyLink(SubEntity):
    label: str
    url: str
    sort_order: int = 0


class Home(SourceEntity):
    unit: str | None = None
    year_built: int | None = None
    square_footage: int | None = None
    bedrooms: int | None = None
    bathrooms: float | None = None
    hoa_name: str | None = None
    hoa_contact_info: str | None = None
    ac_filter_sizes: str | None = None
    ac_filter_replacement_interval_days: int | None = None

    utilities: list[HomeUtility] = Field(default_factory=list)
    property_links: list[PropertyLink] = Field(default_factory=list)


class CalendarEvent(SourceEntity):
    title: str = Field(min_length=1)
    description: str | None = None
    start_time_utc: datetime
    end_time_utc: datetime | None = None
    is_all_day: bool = False
    color: str | None = None
    recurrence_rule: str | None = None
    location: str | None = None


class StockEntry(SourceEntity):
    product_id: UUID
    amount: float
    best_before_date: date | None = None
    purchased_date: date | None = None
    price: float | None = None
    location_id: UUID | None = None
    opened_date: date | None = None
    note: str | None = None


class HouseholdSnapshot(WireModel):
    """A full export of the self-hosted household data set."""

    model_config = ConfigDict(extra="ignore")

    locations: list[Location] = Field(default_factory=list)
    quantity_units: list[QuantityUnit] = Field(default_factory=list)
    product_groups: list[ProductGroup] = Field(default_factory=list)
    shopping_locations: list[ShoppingLocation] = Field(default_factory=list)
    equipment_categories: list[EquipmentCategory] = Field(default_factory=list)
    contact_tags: list[ContactTag] = Field(default_factory=list)
    contacts: list[Contact] = Field(default_factory=list)
    products: list[Product] = Field(default_factory=list)
    equipment: list[Equipment] = Field(default_factory=list)
    vehicles: list[Vehicle] = Field(default_factory=list)
    recipes: list[Recipe] = Field(default_factory=list)
    chores: list[Chore] = Field(default_factory=list)
    chore_logs: list[ChoreLog] = Field(default_factory=list)
    todo_items: list[TodoItem] = Field(default_factory=list)
    shopping_lists: list[ShoppingList] = Field(default_factory=list)
    storage_bins: list[StorageBin] = Field(default_factory=list)
    home: Home | None = None
    calendar_events: list[CalendarEvent] = Field(default_factory=list)
    stock: list[StockEntry] = Field(default_factory=list)
