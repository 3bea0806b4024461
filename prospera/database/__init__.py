"""
Database package for the **Prospera** backend.

Central export surface for the record-store layer:

• `Database`: façade exposing one model per table
• `DataAPIClient`: low-level Aurora Data API client
• Pydantic schemas for rows, alerts and request bodies

Example:
    from prospera.database import Database, DataAPIClient, Alert
"""

from .client import DataAPIClient
from .models import Database
from .schemas import (
    # Types
    AlertType,
    AlertPriority,
    EmployeeStatus,
    InviteRole,
    PlanType,
    NotificationFrequency,
    VerificationAction,

    # Rows
    BillRecord,
    EmployeeRecord,

    # Responses
    Alert,

    # Request bodies
    GenerateAlertsRequest,
    PhoneVerificationRequest,
    SendAlertEmailRequest,
    SendInviteRequest,
    VerifyInviteRequest,
    AcceptInviteRequest,
)

__all__ = [
    'Database',
    'DataAPIClient',
    'Alert',
    'BillRecord',
    'EmployeeRecord',
    'GenerateAlertsRequest',
    'PhoneVerificationRequest',
    'SendAlertEmailRequest',
    'SendInviteRequest',
    'VerifyInviteRequest',
    'AcceptInviteRequest',
    'AlertType',
    'AlertPriority',
    'EmployeeStatus',
    'InviteRole',
    'PlanType',
    'NotificationFrequency',
    'VerificationAction',
]
