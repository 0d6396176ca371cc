"""Twilio WhatsApp delivery channel."""
import re
from typing import Dict, Any, Optional

import requests
from flask import current_app
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.request_validator import RequestValidator
from twilio.rest import Client

from taller.exceptions import ChannelError

WHATSAPP_PREFIX = 'whatsapp:'
_STRIP_CHARS = re.compile(r'[\s\-\(\)]')


def format_whatsapp_number(phone_number: str, default_country_code: str = '+503') -> str:
    """
    Normalize a phone number to Twilio's WhatsApp address format.

    Examples:
        "7931-2064"        -> "whatsapp:+50379312064"
        "50379312064"      -> "whatsapp:+50379312064"
        "+1 (415) 555-0100" -> "whatsapp:+14155550100"
    """
    clean = (phone_number or '').strip()
    if clean.startswith(WHATSAPP_PREFIX):
        clean = clean[len(WHATSAPP_PREFIX):]
    normalized = _STRIP_CHARS.sub('', clean)

    if normalized.startswith('+'):
        return f'{WHATSAPP_PREFIX}{normalized}'

    country_digits = default_country_code.lstrip('+')
    if normalized.startswith(country_digits):
        return f'{WHATSAPP_PREFIX}+{normalized}'

    return f'{WHATSAPP_PREFIX}+{country_digits}{normalized}'


class TwilioWhatsAppChannel:
    """Cliente para enviar mensajes de WhatsApp a través de Twilio."""

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        whatsapp_number: Optional[str],
        sandbox_number: Optional[str] = None,
        use_sandbox: bool = False,
        default_country_code: str = '+503',
        timeout: int = 10
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.whatsapp_number = whatsapp_number
        self.sandbox_number = sandbox_number
        self.use_sandbox = use_sandbox
        self.default_country_code = default_country_code
        self.timeout = timeout
        self._client = None

    @classmethod
    def from_config(cls, config) -> 'TwilioWhatsAppChannel':
        return cls(
            account_sid=config.get('TWILIO_ACCOUNT_SID'),
            auth_token=config.get('TWILIO_AUTH_TOKEN'),
            whatsapp_number=config.get('TWILIO_WHATSAPP_NUMBER'),
            sandbox_number=config.get('TWILIO_SANDBOX_NUMBER'),
            use_sandbox=config.get('TWILIO_USE_SANDBOX', False),
            default_country_code=config.get('TWILIO_DEFAULT_COUNTRY_CODE', '+503'),
            timeout=config.get('TWILIO_TIMEOUT', 10)
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.whatsapp_number)

    @property
    def from_number(self) -> Optional[str]:
        if not self.is_configured:
            return None
        number = self.whatsapp_number
        if self.use_sandbox:
            number = self.sandbox_number or self.whatsapp_number
        return f'{WHATSAPP_PREFIX}{number}'

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(
                self.account_sid,
                self.auth_token,
                http_client=TwilioHttpClient(timeout=self.timeout)
            )
        return self._client

    def status(self) -> Dict[str, Any]:
        """Configuration status, safe to expose (no credentials)."""
        if not self.is_configured:
            return {'configured': False, 'mode': 'not_configured'}

        return {
            'configured': True,
            'mode': 'sandbox' if self.use_sandbox else 'production',
            'whatsapp_number': self.from_number[len(WHATSAPP_PREFIX):],
        }

    def send(self, to: str, body: str) -> str:
        """
        Send a WhatsApp message.

        Args:
            to: Recipient phone number (any common format)
            body: Rendered message content

        Returns:
            Twilio message SID

        Raises:
            ChannelError: not configured, rejected by Twilio or transport failure
        """
        if not self.is_configured:
            raise ChannelError('Twilio no está configurado. Verifique las variables de entorno.')

        to_address = format_whatsapp_number(to, self.default_country_code)
        current_app.logger.info(f"[WA] Sending message to {to_address}")

        try:
            message = self.client.messages.create(
                from_=self.from_number,
                to=to_address,
                body=body
            )
        except TwilioRestException as e:
            current_app.logger.error(f"[WA] Twilio error [{e.code}]: {e.msg}")
            raise ChannelError(e.msg or 'Error de Twilio', error_code=e.code)
        except (TwilioException, requests.RequestException) as e:
            current_app.logger.error(f"[WA] Transport error: {e}")
            raise ChannelError(str(e) or 'Error de conexión con Twilio')

        current_app.logger.info(f"[WA] Message accepted: {message.sid}")
        return message.sid

    def validate_signature(self, url: str, params: Dict[str, str], signature: Optional[str]) -> bool:
        """Check the X-Twilio-Signature header of a webhook request."""
        if not self.auth_token or not signature:
            return False
        return RequestValidator(self.auth_token).validate(url, params, signature)


def get_whatsapp_channel() -> TwilioWhatsAppChannel:
    """Channel for the current app; tests may inject one via app.extensions['whatsapp_channel']."""
    channel = current_app.extensions.get('whatsapp_channel')
    if channel is None:
        channel = TwilioWhatsAppChannel.from_config(current_app.config)
        current_app.extensions['whatsapp_channel'] = channel
    return channel
