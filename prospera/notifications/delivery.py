"""
Outbound delivery channels.

E-mail goes through Amazon SES and SMS through Amazon SNS. Both senders are
thin wrappers around a boto3 client so tests can hand in a stub; any AWS
failure is logged and raised as a `DependencyError`.
"""

import logging
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import DependencyError

logger = logging.getLogger(__name__)


class EmailSender:
    """Send plain-text e-mail through SES."""

    def __init__(self, source: str, region: str = "us-east-1", client: Any = None) -> None:
        self.source = source
        self.client = client or boto3.client("ses", region_name=region)

    def send(self, to: str, subject: str, body: str) -> Optional[str]:
        """
        Send one message and return the SES message id.

        Parameters
        ----------
        to : str
            Recipient address.
        subject : str
            Subject line.
        body : str
            Plain-text body.
        """
        try:
            response = self.client.send_email(
                Source=self.source,
                Destination={"ToAddresses": [to]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": {"Text": {"Data": body, "Charset": "UTF-8"}},
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to send e-mail to %s: %s", to, e)
            raise DependencyError("Failed to send e-mail") from e

        return response.get("MessageId")


class SmsSender:
    """Send transactional SMS through SNS."""

    def __init__(self, region: str = "us-east-1", client: Any = None) -> None:
        self.client = client or boto3.client("sns", region_name=region)

    def send(self, phone: str, message: str) -> Optional[str]:
        try:
            response = self.client.publish(
                PhoneNumber=phone,
                Message=message,
                MessageAttributes={
                    "AWS.SNS.SMS.SMSType": {
                        "DataType": "String",
                        "StringValue": "Transactional",
                    }
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to send SMS: %s", e)
            raise DependencyError("Failed to send SMS") from e

        return response.get("MessageId")
