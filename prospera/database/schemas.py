"""
Pydantic schemas for the Prospera backend.

This module defines the strongly-typed models used for:

* Parsing record-store rows consumed by business logic (bills, employees)
* Shaping the alert payload returned to the frontend
* Validating request bodies of the HTTP handlers

Key design goals:

* Use `Literal` types for every finite enum (alert types, priorities, roles)
* Keep money as `Decimal`
* Expose camelCase on the wire while keeping snake_case in Python

These schemas are imported throughout the backend via:

    from prospera.database import Alert, BillRecord, EmployeeRecord
"""

from datetime import date
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ============================================================
# Literal Types
# ============================================================

AlertType = Literal[
    "bill",
    "employee",
    "expense",
    "achievement",
    "tax",
    "asset",
    "investment",
]

AlertPriority = Literal["high", "medium", "low"]

EmployeeStatus = Literal["active", "inactive"]

# Collaborator roles a family-plan owner can grant
InviteRole = Literal["viewer", "editor", "admin"]

PlanType = Literal["starter", "family"]

NotificationFrequency = Literal["immediate", "daily", "weekly"]

VerificationAction = Literal["send", "verify"]


# ============================================================
# Record-store rows
# ============================================================

class BillRecord(BaseModel):
    """
    A recurring bill owned by a user.

    Attributes
    ----------
    amount : Decimal
        Amount due in BRL.
    next_due : date
        Next due date.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    company: str = ""
    amount: Decimal = Decimal("0")
    next_due: date
    is_active: bool = True

    @field_validator("company", mode="before")
    @classmethod
    def _null_company(cls, v):
        return "" if v is None else v


class EmployeeRecord(BaseModel):
    """
    A household employee on the user's payroll.

    Attributes
    ----------
    fgts_percentage : Decimal
        FGTS contribution rate, 0–100 (8 by default).
    next_vacation : date, optional
        Date the next vacation period is due.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    salary: Decimal = Decimal("0")
    fgts_percentage: Decimal = Field(default=Decimal("8"), ge=0, le=100)
    next_vacation: Optional[date] = None
    status: EmployeeStatus = "active"

    @field_validator("fgts_percentage", mode="before")
    @classmethod
    def _null_fgts_percentage(cls, v):
        # Nullable column; NULL means the statutory 8%
        return Decimal("8") if v is None else v


# ============================================================
# Alerts
# ============================================================

class Alert(BaseModel):
    """
    A rule-derived notification about a financial event.

    Serialise with ``model_dump(by_alias=True, exclude_none=True)`` to obtain
    the camelCase wire format (``isRead``, ``relatedId`` ...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    type: AlertType
    title: str
    description: str
    date: date
    priority: AlertPriority
    is_read: bool = False
    related_id: Optional[str] = None
    related_entity: Optional[str] = None
    action_path: Optional[str] = None
    action_label: Optional[str] = None


# ============================================================
# Request bodies
# ============================================================
#
# Required fields are declared optional so handlers can answer with a
# precise 400 message instead of a generic validation failure.

class _CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class GenerateAlertsRequest(_CamelRequest):
    user_id: Optional[str] = None


class PhoneVerificationRequest(_CamelRequest):
    action: Optional[str] = None
    phone: Optional[str] = None
    code: Optional[str] = None
    user_id: Optional[str] = None


class SendAlertEmailRequest(_CamelRequest):
    alert_id: Optional[str] = None
    test_mode: bool = False


class SendInviteRequest(_CamelRequest):
    email: Optional[str] = None
    role: Optional[str] = None


class VerifyInviteRequest(_CamelRequest):
    token: Optional[str] = None


class AcceptInviteRequest(_CamelRequest):
    token: Optional[str] = None
    user_id: Optional[str] = None
