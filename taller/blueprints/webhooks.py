"""
Webhooks Blueprint for Twilio WhatsApp status callbacks.

Twilio posts form-encoded status updates (queued, sent, delivered, read,
failed, undelivered) for every message we submitted. The endpoint always
acknowledges with 200 so Twilio does not retry payloads we cannot use.
"""

import logging
from flask import Blueprint, request, jsonify, current_app
from taller.blueprints.metrics import whatsapp_webhooks_total
from taller.database import get_session
from taller.services.notification_service import reconcile_webhook
from taller.services.whatsapp_channel import get_whatsapp_channel

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__, url_prefix='/webhooks')


def verify_twilio_signature(params: dict) -> bool:
    """Verify the X-Twilio-Signature header against the public webhook URL."""
    if not current_app.config.get('WHATSAPP_WEBHOOK_VALIDATE', True):
        return True

    signature = request.headers.get('X-Twilio-Signature', '')
    if not signature:
        logger.warning("Missing X-Twilio-Signature header in WhatsApp webhook")
        return False

    url = current_app.config.get('WHATSAPP_WEBHOOK_URL') or request.url
    is_valid = get_whatsapp_channel().validate_signature(url, params, signature)
    if not is_valid:
        logger.warning(f"Invalid Twilio signature for {url}")
    return is_valid


def _ack(**extra):
    return jsonify({'received': True, **extra}), 200


@webhooks_bp.route('/whatsapp', methods=['POST'])
def whatsapp_webhook():
    """
    Handle a Twilio message status callback.

    Expected form fields: MessageSid (or SmsSid), MessageStatus (or
    SmsStatus), ErrorCode, ErrorMessage.
    """
    try:
        params = request.form.to_dict()

        if not verify_twilio_signature(params):
            whatsapp_webhooks_total.labels(outcome='invalid_signature').inc()
            return _ack(processed=False)

        message_sid = params.get('MessageSid') or params.get('SmsSid')
        message_status = params.get('MessageStatus') or params.get('SmsStatus')
        error_code = params.get('ErrorCode')
        error_message = params.get('ErrorMessage')

        logger.info(f"WhatsApp webhook received: sid={message_sid} status={message_status}")

        if not message_sid or not message_status:
            whatsapp_webhooks_total.labels(outcome='invalid_payload').inc()
            return _ack(processed=False)

        message = reconcile_webhook(
            message_sid,
            message_status,
            error_code=error_code,
            error_message=error_message,
            session=get_session()
        )

        if message is None:
            whatsapp_webhooks_total.labels(outcome='unknown_message').inc()
            return _ack(processed=False)

        whatsapp_webhooks_total.labels(outcome='processed').inc()
        return _ack(processed=True, status=message.status)

    except Exception as e:
        # Twilio must always get an acknowledgement
        logger.exception(f"Error processing WhatsApp webhook: {e}")
        whatsapp_webhooks_total.labels(outcome='error').inc()
        return _ack(processed=False)


@webhooks_bp.route('/whatsapp', methods=['GET'])
def whatsapp_webhook_health():
    """Health check to verify the webhook is reachable."""
    return jsonify({
        'status': 'ok',
        'message': 'WhatsApp webhook endpoint is active'
    }), 200
