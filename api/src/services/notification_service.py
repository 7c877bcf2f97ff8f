"""
Notifications derived from stored records.

Nothing is persisted: every call scans the relevant repositories and builds
the current list of residence expiries, overdue or partly paid invoices and
unpaid payslips.
"""

from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Literal, Optional

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from api.src.repositories.base import EntityRepository, Record, to_iso

logger = structlog.get_logger(__name__)

NotificationType = Literal[
    "residence_expiring", "invoice_overdue", "invoice_pending", "payslip_unpaid"
]
ResidenceStatus = Literal["expired", "critical", "warning", "valid"]


class Notification(BaseModel):
    id: str
    type: NotificationType
    title: str
    message: str
    entity_id: str
    entity_type: str
    read: bool = False
    created_at: str
    link: str

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def parse_day(value: Optional[str]) -> Optional[date]:
    """Read the calendar day of an ISO date or datetime string."""
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _amount(value) -> float:
    return float(value) if isinstance(value, (int, float)) else 0.0


def _format_amount(value: float) -> str:
    return f"{value:g}" if value == int(value) else f"{value:.2f}"


class NotificationService:
    """Builds notifications from the entity repositories."""

    def __init__(
        self,
        repositories: Dict[str, EntityRepository],
        warning_days: int = 30,
        critical_days: int = 7,
        today: Optional[Callable[[], date]] = None
    ):
        self.repositories = repositories
        self.warning_days = warning_days
        self.critical_days = critical_days
        self._today = today or date.today

    def residence_status(self, expiry: date) -> ResidenceStatus:
        days = (expiry - self._today()).days
        if days < 0:
            return "expired"
        if days <= self.critical_days:
            return "critical"
        if days <= self.warning_days:
            return "warning"
        return "valid"

    async def get_all(self) -> List[Notification]:
        now = to_iso(datetime.now(timezone.utc))
        notifications: List[Notification] = []
        notifications.extend(await self._residence_notifications(now))
        notifications.extend(await self._invoice_notifications(now))
        notifications.extend(await self._payslip_notifications(now))
        logger.debug("notifications_generated", count=len(notifications))
        return notifications

    async def count(self) -> int:
        return len(await self.get_all())

    # =========================================================================
    # Generators
    # =========================================================================

    async def _residence_notifications(self, now: str) -> List[Notification]:
        notifications = []
        for name, entity_type in (("customers", "customer"), ("vendors", "vendor"), ("employees", "employee")):
            for record in await self.repositories[name].get_all():
                expiry = parse_day(record.get("residenceExpiryDate"))
                if expiry is None:
                    continue
                status = self.residence_status(expiry)
                if status == "valid":
                    continue

                days = (expiry - self._today()).days
                when = "expired" if days < 0 else f"{days} days remaining"
                notifications.append(Notification(
                    id=f"residence-{entity_type}-{record['id']}",
                    type="residence_expiring",
                    title=f"{entity_type.capitalize()} residence expiring",
                    message=f"Residence of {self._display_name(record)} expires: {when}",
                    entity_id=record["id"],
                    entity_type=entity_type,
                    created_at=now,
                    link=f"/{name}/{record['id']}",
                ))
        return notifications

    async def _invoice_notifications(self, now: str) -> List[Notification]:
        overdue, pending = [], []
        today = self._today()
        for invoice in await self.repositories["invoices"].get_all():
            status = invoice.get("status")
            outstanding = _amount(invoice.get("total")) - _amount(invoice.get("paidAmount"))
            number = invoice.get("invoiceNumber") or invoice["id"]

            due = parse_day(invoice.get("dueDate"))
            if status in ("sent", "overdue") and due is not None and due < today:
                overdue.append(Notification(
                    id=f"invoice-overdue-{invoice['id']}",
                    type="invoice_overdue",
                    title="Invoice overdue",
                    message=(
                        f"Invoice {number} is {(today - due).days} days overdue"
                        f" - amount due: {_format_amount(outstanding)}"
                    ),
                    entity_id=invoice["id"],
                    entity_type="invoice",
                    created_at=now,
                    link=f"/invoices/{invoice['id']}",
                ))

            if status == "sent" and outstanding > 0:
                pending.append(Notification(
                    id=f"invoice-pending-{invoice['id']}",
                    type="invoice_pending",
                    title="Invoice pending",
                    message=f"Invoice {number} is not fully paid - remaining: {_format_amount(outstanding)}",
                    entity_id=invoice["id"],
                    entity_type="invoice",
                    created_at=now,
                    link=f"/invoices/{invoice['id']}",
                ))
        return overdue + pending

    async def _payslip_notifications(self, now: str) -> List[Notification]:
        notifications = []
        employees = self.repositories["employees"]
        for payslip in await self.repositories["payslips"].get_all():
            if payslip.get("status") not in ("issued", "draft"):
                continue

            employee = None
            if payslip.get("employeeId"):
                employee = await employees.get_by_id(payslip["employeeId"])
            who = self._display_name(employee) if employee else "unknown employee"

            notifications.append(Notification(
                id=f"payslip-unpaid-{payslip['id']}",
                type="payslip_unpaid",
                title="Payslip unpaid",
                message=(
                    f"Payslip {payslip.get('payslipNumber') or payslip['id']} for {who}"
                    f" - amount: {_format_amount(_amount(payslip.get('netPay')))}"
                ),
                entity_id=payslip["id"],
                entity_type="payslip",
                created_at=now,
                link=f"/payslips/{payslip['id']}",
            ))
        return notifications

    @staticmethod
    def _display_name(record: Record) -> str:
        if record.get("name"):
            return record["name"]
        full_name = " ".join(
            part for part in (record.get("firstName"), record.get("lastName")) if part
        )
        return full_name or record.get("id", "")
