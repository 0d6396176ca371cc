"""Order sheet PDF generation."""

from datetime import datetime
from io import BytesIO
from typing import Dict, Any

from reportlab.lib.pagesizes import LETTER
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from sqlalchemy.orm import Session

from taller.exceptions import NotFoundError
from taller.models import Order
from taller.utils.formatters import money, date_sv, datetime_sv, quantity

STATUS_LABELS = {
    'new': 'Nueva',
    'diagnosis': 'Diagnóstico',
    'waiting_approval': 'Esperando aprobación',
    'approved': 'Aprobada',
    'in_progress': 'En proceso',
    'waiting_parts': 'Esperando repuestos',
    'quality_check': 'Control de calidad',
    'ready': 'Lista',
    'delivered': 'Entregada',
    'cancelled': 'Cancelada',
}

PAYMENT_STATUS_LABELS = {
    'pending': 'Pendiente',
    'partial': 'Parcial',
    'paid': 'Pagada',
}

METHOD_LABELS = {
    'cash': 'Efectivo',
    'card': 'Tarjeta',
    'transfer': 'Transferencia',
    'check': 'Cheque',
    'credit': 'Crédito',
}

HEADER_BLUE = colors.HexColor('#3498DB')
GRID_GREY = colors.HexColor('#BDC3C7')
ROW_ALT = colors.HexColor('#ECF0F1')
TEXT_DARK = colors.HexColor('#34495E')


def _table_style():
    return TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), HEADER_BLUE),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
        ('ALIGN', (1, 1), (-1, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, GRID_GREY),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, ROW_ALT]),
    ])


def render_order_pdf(order: Order, workshop_info: Dict[str, Any]) -> BytesIO:
    """
    Render the order sheet: header, order data, budget, totals, payments.
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=LETTER,
        rightMargin=0.6*inch,
        leftMargin=0.6*inch,
        topMargin=0.6*inch,
        bottomMargin=0.6*inch,
        title=f'Orden {order.folio}'
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'OrderTitle',
        parent=styles['Heading1'],
        fontSize=20,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=10,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )

    header_style = ParagraphStyle(
        'OrderHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=4
    )

    section_style = ParagraphStyle(
        'OrderSection',
        parent=styles['Heading3'],
        textColor=TEXT_DARK,
        spaceBefore=8,
        spaceAfter=6
    )

    # 1. Workshop header
    elements.append(Paragraph(f"ORDEN DE TRABAJO {order.folio}", title_style))

    if workshop_info.get('name'):
        elements.append(Paragraph(f"<b>{workshop_info['name']}</b>", header_style))
    if workshop_info.get('address'):
        elements.append(Paragraph(workshop_info['address'], header_style))

    contact_parts = []
    if workshop_info.get('phone'):
        contact_parts.append(f"Tel: {workshop_info['phone']}")
    if workshop_info.get('email'):
        contact_parts.append(f"Email: {workshop_info['email']}")
    if contact_parts:
        elements.append(Paragraph(" | ".join(contact_parts), header_style))

    elements.append(Spacer(1, 0.2*inch))

    # 2. Order metadata
    owner = order.owner
    vehicle = order.vehicle
    info_data = [
        ['Estado:', STATUS_LABELS.get(order.status, order.status)],
        ['Fecha de ingreso:', datetime_sv(order.created_at)],
        ['Fecha compromiso:', date_sv(order.commitment_date)],
        ['Cliente:', owner.name if owner else '-'],
        ['Teléfono:', owner.phone if owner else '-'],
        ['Vehículo:', f"{vehicle.display_name} ({vehicle.plate})" if vehicle else '-'],
        ['Motivo:', order.reason or '-'],
    ]

    info_table = Table(info_data, colWidths=[1.6*inch, 5.2*inch])
    info_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), TEXT_DARK),
    ]))
    elements.append(info_table)

    # 3. Budget lines
    elements.append(Paragraph("Presupuesto", section_style))
    budget_data = [['Descripción', 'Cant.', 'Precio Unit.', 'Desc.', 'Impuesto', 'Total']]
    for line in order.budget_lines:
        description = line.description
        if line.type == 'parts' and line.part_number:
            description = f"{description} ({line.part_number})"
        budget_data.append([
            description,
            quantity(line.quantity),
            money(line.unit_price),
            money(line.discount_amount),
            money(line.tax_amount),
            money(line.total),
        ])
    if len(budget_data) == 1:
        budget_data.append(['Sin líneas de presupuesto', '', '', '', '', ''])

    budget_table = Table(
        budget_data,
        colWidths=[2.6*inch, 0.6*inch, 1*inch, 0.8*inch, 0.9*inch, 0.9*inch],
        repeatRows=1
    )
    budget_table.setStyle(_table_style())
    elements.append(budget_table)
    elements.append(Spacer(1, 0.15*inch))

    # 4. Totals
    totals_data = [
        ['Subtotal:', money(order.subtotal)],
        ['Descuento:', money(order.discount_amount)],
        ['Impuesto:', money(order.tax_amount)],
        ['TOTAL:', money(order.total)],
        ['Pagado:', money(order.amount_paid)],
        ['Saldo:', money(order.balance)],
        ['Estado de pago:', PAYMENT_STATUS_LABELS.get(order.payment_status, order.payment_status)],
    ]
    totals_table = Table(totals_data, colWidths=[5.6*inch, 1.2*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('FONTNAME', (0, 3), (-1, 3), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 3), (-1, 3), 12),
        ('TEXTCOLOR', (0, 3), (-1, 3), colors.HexColor('#27AE60')),
        ('LINEABOVE', (0, 3), (-1, 3), 1, colors.HexColor('#27AE60')),
    ]))
    elements.append(totals_table)

    # 5. Payments
    if order.payments:
        elements.append(Paragraph("Pagos", section_style))
        payments_data = [['Fecha', 'Método', 'Referencia', 'Monto']]
        for payment in order.payments:
            payments_data.append([
                date_sv(payment.payment_date),
                METHOD_LABELS.get(payment.payment_method, payment.payment_method),
                payment.reference_number or '-',
                money(payment.amount),
            ])
        payments_table = Table(payments_data, colWidths=[1.4*inch, 1.6*inch, 2.4*inch, 1.4*inch])
        payments_table.setStyle(_table_style())
        elements.append(payments_table)

    elements.append(Spacer(1, 0.3*inch))
    footer_style = ParagraphStyle(
        'Footer', parent=styles['Normal'], fontSize=8,
        textColor=colors.HexColor('#95A5A6'), alignment=TA_CENTER
    )
    elements.append(Paragraph(
        f"Generado el {datetime.now().strftime('%d/%m/%Y %H:%M')}. <i>No constituye factura.</i>",
        footer_style
    ))

    doc.build(elements)
    buffer.seek(0)
    return buffer


def generate_order_pdf(order_id: int, session: Session, workshop_info: Dict[str, Any]) -> BytesIO:
    """Generate the PDF of a persisted order."""
    order = session.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f'Orden {order_id} no encontrada')
    return render_order_pdf(order, workshop_info)
