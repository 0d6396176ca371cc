"""Orders JSON API: financial summary, payments, budget lines and PDF."""
from flask import Blueprint, request, jsonify, current_app, send_file

from taller.database import get_session
from taller.exceptions import ValidationError
from taller.services import ledger_service, budget_service
from taller.services.ledger_service import to_decimal, quantize_money
from taller.services.order_pdf_service import generate_order_pdf
from taller.utils.number_format import parse_amount, parse_date, parse_bool

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


def _money(value):
    return str(quantize_money(to_decimal(value or 0)))


def _ok(data=None, message=None, status=200):
    body = {'success': True, 'data': data}
    if message:
        body['message'] = message
    return jsonify(body), status


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        raise ValidationError('El cuerpo de la solicitud debe ser un objeto')
    return data


def serialize_summary(summary):
    return {
        **summary,
        'subtotal': _money(summary['subtotal']),
        'tax_amount': _money(summary['tax_amount']),
        'discount_amount': _money(summary['discount_amount']),
        'total': _money(summary['total']),
        'amount_paid': _money(summary['amount_paid']),
        'balance': _money(summary['balance']),
    }


def serialize_payment(payment):
    return {
        'id': payment.id,
        'order_id': payment.order_id,
        'amount': _money(payment.amount),
        'payment_method': payment.payment_method,
        'reference_number': payment.reference_number,
        'notes': payment.notes,
        'payment_date': payment.payment_date.isoformat() if payment.payment_date else None,
    }


def serialize_line(line):
    return {
        'id': line.id,
        'order_id': line.order_id,
        'type': line.type,
        'description': line.description,
        'quantity': str(line.quantity),
        'unit_price': _money(line.unit_price),
        'tax_rate': str(line.tax_rate),
        'discount_percent': str(line.discount_percent),
        'subtotal': _money(line.subtotal),
        'discount_amount': _money(line.discount_amount),
        'tax_amount': _money(line.tax_amount),
        'total': _money(line.total),
        'approved': line.approved,
        'part_number': line.part_number,
        'sort_order': line.sort_order,
        'notes': line.notes,
    }


def _line_payload(data):
    """Coerce the numeric fields of a budget line payload."""
    payload = dict(data)
    try:
        for field in ('quantity', 'unit_price', 'tax_rate', 'discount_percent'):
            if payload.get(field) not in (None, ''):
                payload[field] = parse_amount(payload[field])
    except ValueError as e:
        raise ValidationError(str(e))
    return payload


@orders_bp.route('/<int:order_id>', methods=['GET'])
def order_summary(order_id):
    """Financial summary of an order."""
    db_session = get_session()
    summary = ledger_service.get_financial_summary(order_id, db_session)
    return _ok(serialize_summary(summary))


@orders_bp.route('/<int:order_id>/payments', methods=['GET'])
def list_payments(order_id):
    db_session = get_session()
    payments = ledger_service.list_payments(order_id, db_session)
    return _ok([serialize_payment(p) for p in payments])


@orders_bp.route('/<int:order_id>/payments', methods=['POST'])
def create_payment(order_id):
    """
    Register a payment.

    Body: amount, payment_method, payment_date (YYYY-MM-DD), reference_number,
    notes, allow_overpayment.
    """
    db_session = get_session()
    data = _json_body()

    try:
        amount = parse_amount(data.get('amount'))
        payment_date = parse_date(data.get('payment_date'))
    except ValueError as e:
        raise ValidationError(str(e))

    payment = ledger_service.record_payment(
        order_id,
        amount,
        data.get('payment_method'),
        payment_date=payment_date,
        reference_number=(data.get('reference_number') or '').strip() or None,
        notes=(data.get('notes') or '').strip() or None,
        allow_overpayment=parse_bool(data.get('allow_overpayment')),
        session=db_session
    )

    summary = ledger_service.get_financial_summary(order_id, db_session)
    current_app.logger.info(f"Payment {payment.id} registered on order {order_id}")
    return _ok(
        {'payment': serialize_payment(payment), 'order': serialize_summary(summary)},
        message='Pago registrado exitosamente',
        status=201
    )


@orders_bp.route('/<int:order_id>/budget-lines', methods=['POST'])
def add_budget_line(order_id):
    db_session = get_session()
    line = budget_service.add_budget_line(order_id, _line_payload(_json_body()), db_session)
    summary = ledger_service.get_financial_summary(order_id, db_session)
    return _ok(
        {'line': serialize_line(line), 'order': serialize_summary(summary)},
        message='Línea agregada',
        status=201
    )


@orders_bp.route('/<int:order_id>/budget-lines/<int:line_id>', methods=['PATCH'])
def update_budget_line(order_id, line_id):
    db_session = get_session()
    line = budget_service.update_budget_line(order_id, line_id, _line_payload(_json_body()), db_session)
    summary = ledger_service.get_financial_summary(order_id, db_session)
    return _ok({'line': serialize_line(line), 'order': serialize_summary(summary)}, message='Línea actualizada')


@orders_bp.route('/<int:order_id>/budget-lines/<int:line_id>', methods=['DELETE'])
def delete_budget_line(order_id, line_id):
    db_session = get_session()
    budget_service.delete_budget_line(order_id, line_id, db_session)
    summary = ledger_service.get_financial_summary(order_id, db_session)
    return _ok({'order': serialize_summary(summary)}, message='Línea eliminada')


@orders_bp.route('/<int:order_id>/budget-lines/<int:line_id>/approve', methods=['POST'])
def approve_budget_line(order_id, line_id):
    db_session = get_session()
    data = _json_body()
    approved = parse_bool(data.get('approved', True))
    line = budget_service.set_line_approved(order_id, line_id, approved, db_session)
    return _ok(serialize_line(line))


@orders_bp.route('/<int:order_id>/budget/approve', methods=['POST'])
def approve_budget(order_id):
    db_session = get_session()
    budget_service.approve_budget(order_id, db_session)
    summary = ledger_service.get_financial_summary(order_id, db_session)
    return _ok(serialize_summary(summary), message='Presupuesto aprobado')


@orders_bp.route('/<int:order_id>/pdf', methods=['GET'])
def order_pdf(order_id):
    """Download the order sheet as PDF."""
    db_session = get_session()
    workshop_info = {
        'name': current_app.config.get('WORKSHOP_NAME'),
        'address': current_app.config.get('WORKSHOP_ADDRESS'),
        'phone': current_app.config.get('WORKSHOP_PHONE'),
        'email': current_app.config.get('WORKSHOP_EMAIL'),
    }
    pdf_buffer = generate_order_pdf(order_id, db_session, workshop_info)
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f'orden_{order_id}.pdf'
    )
