"""
Prospera backend.

HTTP handlers for the Prospera personal finance app: alert generation,
payment webhooks, phone verification, alert e-mail, the e-mail digest queue
and family-plan invites. Served by FastAPI, locally through uvicorn and on
AWS Lambda through Mangum.
"""

__version__ = "1.0.0"
