"""
SMS Service - sends reminder and confirmation texts via Twilio.

Python 3.9 compatible - uses typing.Optional
"""

import logging
from typing import Optional

from twilio.rest import Client as TwilioClient

logger = logging.getLogger(__name__)


class TwilioSmsService:
    """Service for sending outbound SMS through Twilio."""

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        phone_number: Optional[str],
        client: Optional[TwilioClient] = None,
    ):
        """Initialize Twilio client.

        Does NOT crash if Twilio not configured - allows graceful degradation.
        Condition routes report SMS conditions as failed instead.
        """
        self.phone_number = phone_number
        self.client: Optional[TwilioClient] = client

        if self.client is None and account_sid and auth_token and phone_number:
            self.client = TwilioClient(account_sid, auth_token)

        if self.is_configured:
            logger.info(f"TwilioSmsService configured with phone: {self.phone_number}")
        else:
            logger.warning("TwilioSmsService: Twilio credentials not configured - SMS will fail")

    @property
    def is_configured(self) -> bool:
        """Check if Twilio is properly configured."""
        return self.client is not None and bool(self.phone_number)

    def send_sms(self, to_phone: str, body: str) -> str:
        """Send a text message.

        Args:
            to_phone: Recipient in E.164 format
            body: Message text

        Returns:
            Twilio Message SID

        Raises:
            RuntimeError: If Twilio not configured
            TwilioRestException: If the Twilio API call fails
        """
        if not self.is_configured:
            raise RuntimeError("Twilio not configured")

        message = self.client.messages.create(
            body=body,
            from_=self.phone_number,
            to=to_phone,
        )
        logger.info(f"SMS sent to {to_phone}: SID={message.sid}")
        return message.sid
