"""
Business entity schemas and the declarative entity table.

Each entity is a flat JSON record stored in its own table. The schemas
validate the shape of incoming bodies (field types and enum values) while
keeping any field they do not know about. ``ENTITIES`` drives both the
repository registry and the generic routers.
"""

from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Type, Union

from sqlalchemy import Column, DateTime, Index, String, Table, text
from sqlalchemy.dialects.postgresql import JSONB
from pydantic import BaseModel, ConfigDict, StrictBool, StrictInt, StrictFloat
from pydantic.alias_generators import to_camel

from api.src.models.auth import Base


# Numbers are kept exactly as sent: no coercion from strings or booleans
Number = Union[StrictInt, StrictFloat]


# ============================================================================
# Pydantic Base
# ============================================================================


class EntityBase(BaseModel):
    """
    Common entity fields.

    ``created_at`` and ``updated_at`` are owned by the store; values sent by
    clients are discarded on write.
    """
    id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class LineItem(BaseModel):
    """Line on a quotation, invoice or purchase order."""
    id: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[Number] = None
    unit_price: Optional[Number] = None
    total: Optional[Number] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class ContactFields(EntityBase):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    id_number: Optional[str] = None
    passport_number: Optional[str] = None
    residence_issue_date: Optional[str] = None
    residence_expiry_date: Optional[str] = None
    nationality: Optional[str] = None


# ============================================================================
# Entity Schemas
# ============================================================================


class Customer(ContactFields):
    pass


class Vendor(ContactFields):
    contact_person: Optional[str] = None


class Vehicle(EntityBase):
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[StrictInt] = None
    license_plate: Optional[str] = None
    vin: Optional[str] = None
    color: Optional[str] = None
    mileage: Optional[Number] = None
    purchase_date: Optional[str] = None
    purchase_price: Optional[Number] = None
    status: Optional[Literal["active", "maintenance", "retired"]] = None
    notes: Optional[str] = None


class Employee(ContactFields):
    employee_number: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    hire_date: Optional[str] = None
    salary: Optional[Number] = None
    status: Optional[Literal["active", "inactive", "terminated"]] = None


class PricedDocument(EntityBase):
    """Fields shared by quotations, invoices and purchase orders."""
    date: Optional[str] = None
    items: Optional[List[LineItem]] = None
    subtotal: Optional[Number] = None
    tax_rate: Optional[Number] = None
    tax_amount: Optional[Number] = None
    total: Optional[Number] = None
    terms: Optional[str] = None
    notes: Optional[str] = None


class Quotation(PricedDocument):
    quotation_number: Optional[str] = None
    customer_id: Optional[str] = None
    valid_until: Optional[str] = None
    billing_type: Optional[str] = None
    status: Optional[Literal["draft", "sent", "accepted", "rejected", "expired"]] = None


class Invoice(PricedDocument):
    invoice_number: Optional[str] = None
    quotation_id: Optional[str] = None
    purchase_order_id: Optional[str] = None
    customer_id: Optional[str] = None
    due_date: Optional[str] = None
    billing_type: Optional[str] = None
    paid_amount: Optional[Number] = None
    status: Optional[Literal["draft", "sent", "paid", "overdue", "cancelled"]] = None
    project_name: Optional[str] = None
    lpo_number: Optional[str] = None
    scope_of_work: Optional[str] = None
    amount_in_words: Optional[str] = None


class PurchaseOrder(PricedDocument):
    order_number: Optional[str] = None
    vendor_id: Optional[str] = None
    customer_id: Optional[str] = None
    quotation_id: Optional[str] = None
    expected_delivery: Optional[str] = None
    status: Optional[
        Literal["draft", "pending", "approved", "rejected", "completed", "cancelled", "received"]
    ] = None


class Receipt(EntityBase):
    receipt_number: Optional[str] = None
    invoice_id: Optional[str] = None
    customer_id: Optional[str] = None
    date: Optional[str] = None
    payment_date: Optional[str] = None
    amount: Optional[Number] = None
    payment_method: Optional[
        Literal["cash", "bank_transfer", "cheque", "credit_card", "other"]
    ] = None
    reference_number: Optional[str] = None
    bank_name: Optional[str] = None
    notes: Optional[str] = None
    payment_image_url: Optional[str] = None
    status: Optional[Literal["draft", "issued", "cancelled"]] = None


class Payslip(EntityBase):
    payslip_number: Optional[str] = None
    employee_id: Optional[str] = None
    pay_period_start: Optional[str] = None
    pay_period_end: Optional[str] = None
    issue_date: Optional[str] = None
    base_salary: Optional[Number] = None
    overtime: Optional[Number] = None
    bonuses: Optional[Number] = None
    deductions: Optional[Number] = None
    tax: Optional[Number] = None
    net_pay: Optional[Number] = None
    status: Optional[Literal["draft", "issued", "paid"]] = None
    payment_method: Optional[str] = None
    payment_date: Optional[str] = None
    notes: Optional[str] = None


class Project(EntityBase):
    project_number: Optional[str] = None
    quotation_id: Optional[str] = None
    customer_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    billing_type: Optional[Literal["hours", "days", "fixed"]] = None
    hourly_rate: Optional[Number] = None
    daily_rate: Optional[Number] = None
    fixed_amount: Optional[Number] = None
    po_number: Optional[str] = None
    po_date: Optional[str] = None
    po_received: Optional[StrictBool] = None
    assigned_vehicles: Optional[List[str]] = None
    status: Optional[
        Literal["draft", "quotation_sent", "po_received", "active", "completed", "cancelled"]
    ] = None
    terms: Optional[str] = None
    notes: Optional[str] = None


class UsageEntry(EntityBase):
    """Hours or days a vehicle worked on a project."""
    project_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    date: Optional[str] = None
    hours: Optional[Number] = None
    days: Optional[Number] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    rate: Optional[Number] = None
    total: Optional[Number] = None
    invoiced: Optional[StrictBool] = None
    invoice_id: Optional[str] = None


class MonthlyInvoice(EntityBase):
    """Invoice grouping one month of a project's usage entries."""
    invoice_number: Optional[str] = None
    project_id: Optional[str] = None
    customer_id: Optional[str] = None
    month: Optional[StrictInt] = None
    year: Optional[StrictInt] = None
    usage_entries: Optional[List[str]] = None
    total_hours: Optional[Number] = None
    total_days: Optional[Number] = None
    subtotal: Optional[Number] = None
    tax_rate: Optional[Number] = None
    tax_amount: Optional[Number] = None
    total: Optional[Number] = None
    status: Optional[Literal["draft", "sent", "paid", "overdue"]] = None
    date: Optional[str] = None
    due_date: Optional[str] = None
    paid_amount: Optional[Number] = None
    notes: Optional[str] = None


# ============================================================================
# Entity Table
# ============================================================================


@dataclass(frozen=True)
class EntitySpec:
    """
    Declarative description of one entity kind.

    Attributes:
        name: Table and registry name
        path: URL path segment under the API prefix
        label: Singular display label ("Customer")
        plural: Plural lower-case label used in failure messages
        permission_key: Suffix of the edit_/delete_ permissions
        schema: Pydantic model validating request bodies
        id_prefix: Prefix of generated record ids
        number_field: Document number filled on create, if any
        number_setting: Settings key holding the number prefix
        list_filter: Field that narrows the list endpoint when passed as a
            query parameter (``?projectId=...``)
    """
    name: str
    path: str
    label: str
    plural: str
    permission_key: str
    schema: Type[EntityBase]
    id_prefix: str
    number_field: Optional[str] = None
    number_setting: Optional[str] = None
    list_filter: Optional[str] = None

    @property
    def singular(self) -> str:
        return self.label.lower()


ENTITIES: List[EntitySpec] = [
    EntitySpec("customers", "customers", "Customer", "customers", "customers", Customer, "cust"),
    EntitySpec("vendors", "vendors", "Vendor", "vendors", "vendors", Vendor, "vend"),
    EntitySpec("vehicles", "vehicles", "Vehicle", "vehicles", "vehicles", Vehicle, "veh"),
    EntitySpec("employees", "employees", "Employee", "employees", "employees", Employee, "emp"),
    EntitySpec(
        "quotations", "quotations", "Quotation", "quotations", "quotations", Quotation, "quot",
        number_field="quotationNumber", number_setting="quotationPrefix",
    ),
    EntitySpec(
        "invoices", "invoices", "Invoice", "invoices", "invoices", Invoice, "inv",
        number_field="invoiceNumber", number_setting="invoicePrefix",
    ),
    EntitySpec(
        "purchase_orders", "purchase-orders", "Purchase order", "purchase orders",
        "purchase_orders", PurchaseOrder, "po",
    ),
    EntitySpec(
        "receipts", "receipts", "Receipt", "receipts", "receipts", Receipt, "rcpt",
        number_field="receiptNumber", number_setting="receiptPrefix",
    ),
    EntitySpec("payslips", "payslips", "Payslip", "payslips", "payslips", Payslip, "pay"),
    EntitySpec(
        "projects", "projects", "Project", "projects", "projects", Project, "proj",
        number_field="projectNumber", number_setting="projectPrefix",
    ),
    EntitySpec(
        "usage_entries", "usage-entries", "Usage entry", "usage entries",
        "usage_entries", UsageEntry, "use", list_filter="projectId",
    ),
    EntitySpec(
        "monthly_invoices", "monthly-invoices", "Monthly invoice", "monthly invoices",
        "monthly_invoices", MonthlyInvoice, "mi", list_filter="projectId",
    ),
]

ENTITIES_BY_NAME: Dict[str, EntitySpec] = {spec.name: spec for spec in ENTITIES}


# ============================================================================
# SQLAlchemy Tables
# ============================================================================


def _entity_table(name: str) -> Table:
    return Table(
        name,
        Base.metadata,
        Column("id", String(64), primary_key=True),
        Column("data", JSONB, nullable=False),
        Column(
            "created_at",
            DateTime(timezone=True),
            nullable=False,
            server_default=text("CURRENT_TIMESTAMP"),
        ),
        Column(
            "updated_at",
            DateTime(timezone=True),
            nullable=False,
            server_default=text("CURRENT_TIMESTAMP"),
        ),
        Index(f"idx_{name}_created_at", "created_at"),
    )


ENTITY_TABLES: Dict[str, Table] = {spec.name: _entity_table(spec.name) for spec in ENTITIES}
