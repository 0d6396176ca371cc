"""
WhatsApp notification pipeline.

render -> persist pending row -> submit to channel -> mark sent/failed, then
reconcile the row against asynchronous provider status callbacks. The local
row is the source of truth: it is written before the channel is called.
"""
import logging
import re
from datetime import datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from taller.exceptions import (
    ValidationError, NotFoundError, TemplateNotFound, TemplateInactive,
    ConsentRequired, PersistenceError, ChannelError
)
from taller.models import (
    Owner, Order, WhatsAppTemplate, WhatsAppMessage, MessageStatus,
    TimelineEntry, TimelineEntryType
)

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r'\{\{(\w+)\}\}')

# Twilio status vocabulary -> internal status
PROVIDER_STATUS_MAP = {
    'queued': MessageStatus.PENDING,
    'accepted': MessageStatus.PENDING,
    'sending': MessageStatus.PENDING,
    'sent': MessageStatus.SENT,
    'delivered': MessageStatus.DELIVERED,
    'read': MessageStatus.READ,
    'failed': MessageStatus.FAILED,
    'undelivered': MessageStatus.FAILED,
}

# Forward-only progression; failed is handled separately
STATUS_RANK = {
    MessageStatus.PENDING.value: 0,
    MessageStatus.SENT.value: 1,
    MessageStatus.DELIVERED.value: 2,
    MessageStatus.READ.value: 3,
}

TIMESTAMP_FIELDS = {
    MessageStatus.SENT.value: 'sent_at',
    MessageStatus.DELIVERED.value: 'delivered_at',
    MessageStatus.READ.value: 'read_at',
}


def _now():
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def render_template(template, variables: Optional[Dict[str, Any]]) -> str:
    """
    Replace every {{name}} in the template content with variables[name].

    Placeholders without a value are left verbatim. Accepts a
    WhatsAppTemplate or a raw content string.
    """
    content = template if isinstance(template, str) else template.content
    variables = variables or {}

    def _substitute(match):
        name = match.group(1)
        if name in variables and variables[name] is not None:
            return str(variables[name])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_substitute, content)


def extract_template_variables(content: str) -> List[str]:
    """Placeholder names in order of first appearance, without duplicates."""
    seen = []
    for name in PLACEHOLDER_PATTERN.findall(content or ''):
        if name not in seen:
            seen.append(name)
    return seen


def list_templates(session, include_inactive: bool = False) -> List[WhatsAppTemplate]:
    query = session.query(WhatsAppTemplate)
    if not include_inactive:
        query = query.filter(WhatsAppTemplate.is_active.is_(True))
    return query.order_by(WhatsAppTemplate.category, WhatsAppTemplate.name).all()


def create_template(data: Dict[str, Any], session) -> WhatsAppTemplate:
    """Create a template; its variables list is extracted from the content."""
    name = (data.get('name') or '').strip()
    content = (data.get('content') or '').strip()
    if not name or not content:
        raise ValidationError('Nombre y contenido de la plantilla son requeridos')

    template = WhatsAppTemplate(
        name=name,
        category=(data.get('category') or 'general').strip(),
        content=content,
        variables=extract_template_variables(content),
        language=data.get('language') or 'es',
        is_active=bool(data.get('is_active', True))
    )
    session.add(template)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"Error creating template: {e}")
        raise PersistenceError('Error al crear la plantilla')
    return template


def update_template(template_id: int, data: Dict[str, Any], session) -> WhatsAppTemplate:
    template = session.get(WhatsAppTemplate, template_id)
    if not template:
        raise TemplateNotFound(template_id)

    if 'content' in data:
        content = (data['content'] or '').strip()
        if not content:
            raise ValidationError('El contenido de la plantilla es requerido')
        template.content = content
        template.variables = extract_template_variables(content)

    for field in ('name', 'category', 'language', 'is_active'):
        if field in data:
            setattr(template, field, data[field])

    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"Error updating template {template_id}: {e}")
        raise PersistenceError('Error al actualizar la plantilla')
    return template


def duplicate_template(template_id: int, session) -> WhatsAppTemplate:
    """Copy a template; the copy starts inactive."""
    original = session.get(WhatsAppTemplate, template_id)
    if not original:
        raise TemplateNotFound(template_id)

    copy = WhatsAppTemplate(
        name=f'{original.name} (Copia)',
        category=original.category,
        content=original.content,
        variables=list(original.variables or []),
        language=original.language,
        is_active=False
    )
    session.add(copy)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"Error duplicating template {template_id}: {e}")
        raise PersistenceError('Error al duplicar la plantilla')
    return copy


# ---------------------------------------------------------------------------
# Sending
# ---------------------------------------------------------------------------

def send_message(
    owner_id: int,
    template_id: int,
    variables: Optional[Dict[str, Any]],
    phone_number: str,
    order_id: Optional[int] = None,
    channel=None,
    session=None
) -> WhatsAppMessage:
    """
    Render a template and deliver it to an owner over WhatsApp.

    Preconditions are checked before any write. A channel failure does not
    raise: the row is marked failed with the provider error and returned.

    Args:
        owner_id: Owner receiving the message
        template_id: WhatsAppTemplate ID
        variables: Values for the template placeholders
        phone_number: Recipient phone
        order_id: Optional order the message refers to
        channel: Object with send(to, body) -> provider id
        session: SQLAlchemy session

    Returns:
        WhatsAppMessage with status sent or failed

    Raises:
        ValidationError: empty phone number
        TemplateNotFound / TemplateInactive: template precondition
        NotFoundError: unknown owner or order
        ConsentRequired: owner did not accept WhatsApp messages
        PersistenceError: the pending row could not be written
    """
    if not phone_number or not str(phone_number).strip():
        raise ValidationError('El número de teléfono es requerido')

    template = session.get(WhatsAppTemplate, template_id)
    if not template:
        raise TemplateNotFound(template_id)
    if not template.is_active:
        raise TemplateInactive(template.name)

    owner = session.get(Owner, owner_id)
    if not owner:
        raise NotFoundError('Cliente no encontrado')
    if not owner.whatsapp_consent:
        raise ConsentRequired(owner.name)

    if order_id is not None and not session.get(Order, order_id):
        raise NotFoundError(f'Orden {order_id} no encontrada')

    variables = {k: str(v) for k, v in (variables or {}).items() if v is not None}
    content = render_template(template, variables)

    # (a) persist the pending row before calling the channel
    message = WhatsAppMessage(
        owner_id=owner.id,
        order_id=order_id,
        template_id=template.id,
        phone_number=str(phone_number).strip(),
        content=content,
        variables=variables,
        status=MessageStatus.PENDING.value
    )
    session.add(message)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"Error creating message record: {e}")
        raise PersistenceError('Error al crear el registro del mensaje')

    message_id = message.id

    # (b) submit to the channel
    external_id = None
    try:
        external_id = channel.send(message.phone_number, content)
    except ChannelError as e:
        # (d) failure is per-message, not fatal
        message.status = MessageStatus.FAILED.value
        message.error_message = f'[{e.error_code}] {e.message}' if e.error_code else e.message
        logger.warning(f"WhatsApp message {message_id} failed: {message.error_message}")
    else:
        # (c) success
        message.status = MessageStatus.SENT.value
        message.external_id = external_id
        message.sent_at = _now()
        if order_id is not None:
            session.add(TimelineEntry(
                order_id=order_id,
                type=TimelineEntryType.MESSAGE_SENT.value,
                title='Mensaje WhatsApp enviado',
                description=f'Mensaje "{template.name}" enviado a {owner.name}'
            ))

    try:
        session.commit()
    except SQLAlchemyError as e:
        # The channel already has the message; webhook reconciliation cannot
        # find it without external_id, so this is logged for operators.
        session.rollback()
        logger.error(
            f"Reconciliation gap: message {message_id} could not be updated after send "
            f"(external_id={external_id}): {e}"
        )
        return message

    logger.info(f"WhatsApp message {message_id} -> {message.status}")
    return message


# ---------------------------------------------------------------------------
# Webhook reconciliation
# ---------------------------------------------------------------------------

def map_provider_status(provider_status: Optional[str]) -> MessageStatus:
    """Translate a provider status string; unknown values are pending."""
    return PROVIDER_STATUS_MAP.get((provider_status or '').strip().lower(), MessageStatus.PENDING)


def _apply_status(message: WhatsAppMessage, new_status: str, error_code, error_message) -> bool:
    """
    Apply a reported status. Returns True when the row changed.

    Timestamps are stamped only when empty. Status only moves forward;
    a late lower-ranked status still stamps its own timestamp. failed is
    accepted only from pending or sent.
    """
    current = message.status
    changed = False

    if new_status == MessageStatus.FAILED.value:
        if current in (MessageStatus.PENDING.value, MessageStatus.SENT.value):
            message.status = new_status
            message.error_message = error_message or f'Error code: {error_code or "unknown"}'
            return True
        if current == MessageStatus.FAILED.value and not message.error_message:
            message.error_message = error_message or f'Error code: {error_code or "unknown"}'
            return True
        return False

    if current == MessageStatus.FAILED.value:
        return False

    timestamp_field = TIMESTAMP_FIELDS.get(new_status)
    if timestamp_field and getattr(message, timestamp_field) is None:
        setattr(message, timestamp_field, _now())
        changed = True

    if STATUS_RANK[new_status] > STATUS_RANK.get(current, 0):
        message.status = new_status
        changed = True

    return changed


def reconcile_webhook(
    external_id: Optional[str],
    provider_status: Optional[str],
    error_code: Optional[str] = None,
    error_message: Optional[str] = None,
    session=None
) -> Optional[WhatsAppMessage]:
    """
    Update a tracked message from a provider status callback.

    Never raises: unknown ids, bad payloads and store errors are logged and
    resolved as a no-op so the provider gets an acknowledgement.

    Returns:
        The message row, or None when nothing is tracked under external_id
    """
    if not external_id or not provider_status:
        logger.warning(f"Webhook missing fields: external_id={external_id} status={provider_status}")
        return None

    try:
        message = session.query(WhatsAppMessage).filter(
            WhatsAppMessage.external_id == external_id
        ).with_for_update().first()

        if not message:
            logger.warning(f"Message not found for SID: {external_id}")
            return None

        new_status = map_provider_status(provider_status).value
        if _apply_status(message, new_status, error_code, error_message):
            session.commit()
            logger.info(f"Updated message {message.id} to status: {message.status} (reported {provider_status})")
        else:
            session.rollback()
            logger.info(
                f"Ignored {provider_status} for message {message.id} "
                f"(current status {message.status})"
            )
        return message

    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"Error reconciling webhook for {external_id}: {e}")
        return None


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def list_messages(session, owner_id: int = None, order_id: int = None,
                  status: str = None, limit: int = 100) -> List[WhatsAppMessage]:
    query = session.query(WhatsAppMessage)
    if owner_id is not None:
        query = query.filter(WhatsAppMessage.owner_id == owner_id)
    if order_id is not None:
        query = query.filter(WhatsAppMessage.order_id == order_id)
    if status:
        query = query.filter(WhatsAppMessage.status == status)
    return query.order_by(WhatsAppMessage.id.desc()).limit(limit).all()


def get_message_stats(session, today=None) -> Dict[str, Any]:
    """Message counts per status, messages sent today and delivery rate (%)."""
    today = today or _now().date()

    counts = dict(
        session.query(WhatsAppMessage.status, func.count(WhatsAppMessage.id))
        .group_by(WhatsAppMessage.status)
        .all()
    )
    by_status = {status.value: counts.get(status.value, 0) for status in MessageStatus}
    total = sum(by_status.values())

    day_start = datetime.combine(today, time.min, tzinfo=timezone.utc)
    sent_today = session.query(func.count(WhatsAppMessage.id)).filter(
        WhatsAppMessage.sent_at >= day_start,
        WhatsAppMessage.sent_at < day_start + timedelta(days=1)
    ).scalar()

    delivered = by_status[MessageStatus.DELIVERED.value] + by_status[MessageStatus.READ.value]
    return {
        'total_messages': total,
        'sent_today': sent_today,
        'delivery_rate': round(delivered * 100 / total) if total else 0,
        'messages_by_status': by_status,
    }
