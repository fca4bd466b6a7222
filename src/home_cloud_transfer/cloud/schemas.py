"""Request and response bodies of the remote cloud API, one per endpoint."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import Field

from home_cloud_transfer.models.base import RemoteModel, WireModel

# Auth


class LoginRequest(WireModel):
    email: str
    password: str = Field(repr=False)
    remember_me: bool = True


class RegisterRequest(WireModel):
    email: str
    password: str = Field(repr=False)
    confirm_password: str = Field(repr=False)
    first_name: str
    last_name: str


class RefreshTokenRequest(WireModel):
    refresh_token: str = Field(repr=False)


class TokenResponse(RemoteModel):
    access_token: str = Field(repr=False)
    refresh_token: str = Field(repr=False)
    expires_at: datetime | None = None


class CreatedResponse(RemoteModel):
    """Body returned by every create endpoint."""

    id: UUID


# Existing remote items, fetched once per category for duplicate detection.
# Key fields are optional: rows the service returns without them never match.


class RemoteNamed(RemoteModel):
    id: UUID
    name: str | None = None


class RemoteContact(RemoteModel):
    id: UUID
    first_name: str | None = None
    last_name: str | None = None
    company_name: str | None = None


class RemoteVehicle(RemoteModel):
    id: UUID
    year: int | None = None
    make: str | None = None
    model: str | None = None


class RemoteTodoItem(RemoteModel):
    id: UUID
    reason: str | None = None


class RemoteStorageBin(RemoteModel):
    id: UUID
    category: str | None = None
    short_code: str | None = None


class RemoteCalendarEvent(RemoteModel):
    id: UUID
    title: str | None = None
    start_time_utc: datetime | None = None


# Create requests


class LocationCreate(WireModel):
    name: str
    description: str | None = None
    sort_order: int = 0


class QuantityUnitCreate(WireModel):
    name: str
    name_plural: str | None = None
    description: str | None = None


class ProductGroupCreate(WireModel):
    name: str
    description: str | None = None


class ShoppingLocationCreate(WireModel):
    name: str
    description: str | None = None


class EquipmentCategoryCreate(WireModel):
    name: str
    description: str | None = None


class ContactTagCreate(WireModel):
    name: str


class ContactCreate(WireModel):
    first_name: str | None = None
    last_name: str | None = None
    company_name: str | None = None
    middle_name: str | None = None
    preferred_name: str | None = None
    title: str | None = None
    birth_year: int | None = None
    birth_month: int | None = None
    birth_day: int | None = None
    birth_date_precision: str | None = None
    gender: str | None = None
    notes: str | None = None


class ContactAddressCreate(WireModel):
    tag: str | None = None
    is_primary: bool = False
    label: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state_province: str | None = None
    postal_code: str | None = None
    country: str | None = None


class ContactPhoneCreate(WireModel):
    phone_number: str
    tag: str | None = None
    is_primary: bool = False
    label: str | None = None


class ContactEmailCreate(WireModel):
    email: str
    tag: str | None = None
    is_primary: bool = False
    label: str | None = None


class ContactSocialMediaCreate(WireModel):
    service: str
    username: str | None = None
    profile_url: str | None = None


class ProductCreate(WireModel):
    name: str
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


class ProductBarcodeCreate(WireModel):
    barcode: str
    note: str | None = None


class EquipmentCreate(WireModel):
    name: str
    description: str | None = None
    manufacturer: str | None = None
    model_number: str | None = None
    serial_number: str | None = None
    purchase_date: date | None = None
    location: str | None = None
    warranty_expiration_date: date | None = None
    notes: str | None = None
    category_id: UUID | None = None


class EquipmentMaintenanceCreate(WireModel):
    description: str
    completed_date: date | None = None
    usage_at_completion: float | None = None
    notes: str | None = None


class EquipmentUsageCreate(WireModel):
    usage_date: date = Field(alias="date")
    reading: float
    notes: str | None = None


class VehicleCreate(WireModel):
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


class VehicleScheduleCreate(WireModel):
    name: str
    description: str | None = None
    interval_miles: int | None = None
    interval_months: int | None = None
    notes: str | None = None
    is_active: bool = True


class VehicleMileageCreate(WireModel):
    mileage: int
    reading_date: date
    notes: str | None = None


class VehicleMaintenanceCreate(WireModel):
    description: str
    completed_date: date | None = None
    cost: float | None = None
    mileage_at_completion: int | None = None
    service_provider: str | None = None
    notes: str | None = None


class RecipeCreate(WireModel):
    name: str
    servings: int | None = None
    source: str | None = None
    notes: str | None = None
    attribution: str | None = None
    is_meal: bool = False


class RecipeStepCreate(WireModel):
    step_order: int = 0
    title: str | None = None
    description: str | None = None
    instructions: str | None = None


class RecipeIngredientCreate(WireModel):
    product_id: UUID | None = None
    amount: float = 0.0
    quantity_unit_id: UUID | None = None
    note: str | None = None
    only_check_single_unit_in_stock: bool = False


class ChoreCreate(WireModel):
    name: str
    description: str | None = None
    period_type: str | None = None
    period_days: int | None = None


class ChoreLogImport(WireModel):
    """One element of the batched chore-log import payload."""

    chore_id: UUID
    tracked_time: datetime | None = None
    was_skipped: bool = False


class TodoItemCreate(WireModel):
    reason: str
    description: str | None = None
    task_type: str | None = None


class ShoppingListCreate(WireModel):
    name: str
    description: str | None = None


class ShoppingListItemCreate(WireModel):
    product_id: UUID | None = None
    amount: float = 1.0
    product_name: str | None = None
    note: str | None = None
    is_purchased: bool = False


class StorageBinCreate(WireModel):
    category: str
    short_code: str
    description: str | None = None
    location_id: UUID | None = None


class HomeUpdate(WireModel):
    unit: str | None = None
    year_built: int | None = None
    square_footage: int | None = None
    bedrooms: int | None = None
    bathrooms: float | None = None
    hoa_name: str | None = None
    hoa_contact_info: str | None = None
    ac_filter_sizes: str | None = None
    ac_filter_replacement_interval_days: int | None = None


class HomeUtilityCreate(WireModel):
    utility_type: str
    company_name: str | None = None
    account_number: str | None = None
    phone_number: str | None = None
    website: str | None = None
    login_email: str | None = None
    notes: str | None = None


class PropertyLinkCreate(WireModel):
    label: str
    url: str
    sort_order: int = 0


class CalendarEventCreate(WireModel):
    title: str
    description: str | None = None
    start_time_utc: datetime
    end_time_utc: datetime | None = None
    is_all_day: bool = False
    color: str | None = None
    recurrence_rule: str | None = None
    location: str | None = None


class StockEntryCreate(WireModel):
    product_id: UUID
    amount: float
    best_before_date: date | None = None
    purchased_date: date | None = None
    price: float | None = None
    location_id: UUID | None = None
    opened_date: date | None = None
    note: str | None = None
