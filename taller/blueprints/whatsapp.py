"""WhatsApp JSON API: send messages, channel status, stats and templates."""
from flask import Blueprint, request, jsonify, current_app

from taller.blueprints.metrics import whatsapp_messages_total
from taller.database import get_session
from taller.exceptions import ValidationError, NotFoundError
from taller.models import Owner
from taller.services import notification_service
from taller.services.whatsapp_channel import get_whatsapp_channel

whatsapp_bp = Blueprint('whatsapp', __name__, url_prefix='/api/whatsapp')


def serialize_message(message):
    return {
        'id': message.id,
        'owner_id': message.owner_id,
        'order_id': message.order_id,
        'template_id': message.template_id,
        'phone_number': message.phone_number,
        'content': message.content,
        'status': message.status,
        'external_id': message.external_id,
        'error_message': message.error_message,
        'sent_at': message.sent_at.isoformat() if message.sent_at else None,
        'delivered_at': message.delivered_at.isoformat() if message.delivered_at else None,
        'read_at': message.read_at.isoformat() if message.read_at else None,
    }


def serialize_template(template):
    return {
        'id': template.id,
        'name': template.name,
        'category': template.category,
        'content': template.content,
        'variables': template.variables or [],
        'language': template.language,
        'is_active': template.is_active,
    }


def _json_body():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('El cuerpo de la solicitud debe ser un objeto')
    return data


def _int_field(data, field, required=True):
    value = data.get(field)
    if value in (None, ''):
        if required:
            raise ValidationError(f'{field} es requerido')
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} inválido')


@whatsapp_bp.route('/send', methods=['POST'])
def send():
    """
    Send a template message to an owner.

    Body: owner_id, template_id, variables, phone_number (defaults to the
    owner's phone), order_id.
    """
    channel = get_whatsapp_channel()
    if not channel.is_configured:
        return jsonify({
            'success': False,
            'error': 'WhatsApp no está configurado. Configure las credenciales de Twilio.'
        }), 503

    db_session = get_session()
    data = _json_body()

    owner_id = _int_field(data, 'owner_id')
    template_id = _int_field(data, 'template_id')
    order_id = _int_field(data, 'order_id', required=False)

    variables = data.get('variables') or {}
    if not isinstance(variables, dict):
        raise ValidationError('variables debe ser un objeto')

    owner = db_session.get(Owner, owner_id)
    if not owner:
        raise NotFoundError('Cliente no encontrado')
    phone_number = data.get('phone_number') or owner.phone

    message = notification_service.send_message(
        owner_id,
        template_id,
        variables,
        phone_number,
        order_id=order_id,
        channel=channel,
        session=db_session
    )
    whatsapp_messages_total.labels(status=message.status).inc()

    if message.status == 'failed':
        current_app.logger.warning(f"[WA] Message {message.id} failed: {message.error_message}")
        return jsonify({
            'success': False,
            'error': message.error_message or 'Error al enviar el mensaje',
            'data': serialize_message(message)
        }), 502

    return jsonify({
        'success': True,
        'data': serialize_message(message),
        'message': 'Mensaje enviado'
    }), 201


@whatsapp_bp.route('/status', methods=['GET'])
def status():
    """Channel configuration status."""
    return jsonify({'success': True, 'data': get_whatsapp_channel().status()})


@whatsapp_bp.route('/stats', methods=['GET'])
def stats():
    db_session = get_session()
    return jsonify({'success': True, 'data': notification_service.get_message_stats(db_session)})


@whatsapp_bp.route('/messages', methods=['GET'])
def messages():
    db_session = get_session()
    rows = notification_service.list_messages(
        db_session,
        owner_id=request.args.get('owner_id', type=int),
        order_id=request.args.get('order_id', type=int),
        status=request.args.get('status') or None,
        limit=request.args.get('limit', 100, type=int)
    )
    return jsonify({'success': True, 'data': [serialize_message(m) for m in rows]})


@whatsapp_bp.route('/templates', methods=['GET'])
def list_templates():
    db_session = get_session()
    include_inactive = request.args.get('all') == '1'
    templates = notification_service.list_templates(db_session, include_inactive=include_inactive)
    return jsonify({'success': True, 'data': [serialize_template(t) for t in templates]})


@whatsapp_bp.route('/templates', methods=['POST'])
def create_template():
    db_session = get_session()
    template = notification_service.create_template(_json_body(), db_session)
    return jsonify({
        'success': True,
        'data': serialize_template(template),
        'message': 'Plantilla creada'
    }), 201


@whatsapp_bp.route('/templates/<int:template_id>', methods=['PATCH'])
def update_template(template_id):
    db_session = get_session()
    template = notification_service.update_template(
        template_id, _json_body(), db_session
    )
    return jsonify({'success': True, 'data': serialize_template(template), 'message': 'Plantilla actualizada'})


@whatsapp_bp.route('/templates/<int:template_id>/duplicate', methods=['POST'])
def duplicate_template(template_id):
    db_session = get_session()
    template = notification_service.duplicate_template(template_id, db_session)
    return jsonify({
        'success': True,
        'data': serialize_template(template),
        'message': 'Plantilla duplicada'
    }), 201
