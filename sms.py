from dataclasses import dataclass, field
from typing import Iterable, Optional

import structlog
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.rest import Client

from config import Settings, get_settings

logger = structlog.get_logger()

# Twilio rejects alphanumeric sender ids with these codes where the
# destination country or account does not allow them
SENDER_ID_ERROR_CODES = {21212, 21612}


class SmsConfigurationError(Exception):
    pass


@dataclass
class SendSmsResult:
    success: bool
    message_sid: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BulkSendResult:
    sent: int = 0
    failed: int = 0
    results: list[SendSmsResult] = field(default_factory=list)


class SmsSender:
    def __init__(self, settings: Settings, client: Optional[Client] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            if not self.settings.twilio_account_sid or not self.settings.twilio_auth_token:
                raise SmsConfigurationError("Twilio credentials are not configured")
            self._client = Client(self.settings.twilio_account_sid, self.settings.twilio_auth_token)
        return self._client

    def _message_options(self, to: str, message: str) -> dict:
        options = {"body": message, "to": to}
        sender_id = self.settings.twilio_sender_id
        if sender_id:
            options["from_"] = sender_id
        if self.settings.twilio_messaging_service_sid:
            options["messaging_service_sid"] = self.settings.twilio_messaging_service_sid
        elif not sender_id:
            if not self.settings.twilio_phone_number:
                raise SmsConfigurationError(
                    "Set TWILIO_MESSAGING_SERVICE_SID, TWILIO_SENDER_ID or TWILIO_PHONE_NUMBER"
                )
            options["from_"] = self.settings.twilio_phone_number
        return options

    def send(self, to: str, message: str) -> SendSmsResult:
        """Send one message. Failures are returned, never raised."""
        if not to.startswith("+"):
            return SendSmsResult(
                success=False,
                error=f"Invalid phone format: {to}. Must start with + and country code.",
            )

        try:
            options = self._message_options(to, message)
            try:
                twilio_message = self.client.messages.create(**options)
            except TwilioRestException as exc:
                if self.settings.twilio_sender_id and exc.code in SENDER_ID_ERROR_CODES:
                    logger.warning(
                        "Sender id rejected, retrying with default sender",
                        sender_id=self.settings.twilio_sender_id,
                        code=exc.code,
                    )
                    options.pop("from_", None)
                    twilio_message = self.client.messages.create(**options)
                else:
                    raise
        except (SmsConfigurationError, TwilioException, OSError) as exc:
            logger.error("SMS send failed", to=to, error=str(exc))
            return SendSmsResult(success=False, error=str(exc) or "Unknown error sending SMS")

        return SendSmsResult(success=True, message_sid=twilio_message.sid)

    def send_bulk(self, recipients: Iterable[str], message: str) -> BulkSendResult:
        bulk = BulkSendResult()
        for to in recipients:
            result = self.send(to, message)
            bulk.results.append(result)
            if result.success:
                bulk.sent += 1
            else:
                bulk.failed += 1
        return bulk


def get_sms_sender() -> SmsSender:
    return SmsSender(get_settings())
