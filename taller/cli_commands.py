"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask seed-whatsapp-templates: Load the default WhatsApp templates
"""

import click
from sqlalchemy.exc import SQLAlchemyError
from taller.database import db_session, create_all
from taller.models import WhatsAppTemplate
from taller.services.notification_service import extract_template_variables

DEFAULT_TEMPLATES = [
    {
        'name': 'Vehículo recibido',
        'category': 'orden',
        'content': (
            'Hola {{cliente}}, recibimos su {{vehiculo}} en {{taller}}. '
            'Su número de orden es {{folio}}. Le avisaremos cuando tengamos el diagnóstico.'
        ),
    },
    {
        'name': 'Presupuesto listo',
        'category': 'presupuesto',
        'content': (
            'Hola {{cliente}}, el presupuesto de la orden {{folio}} está listo. '
            'Total: {{total}}. Responda este mensaje para aprobarlo.'
        ),
    },
    {
        'name': 'Vehículo listo',
        'category': 'orden',
        'content': (
            'Hola {{cliente}}, su {{vehiculo}} ya está listo para ser retirado en {{taller}}. '
            'Saldo pendiente: {{saldo}}.'
        ),
    },
    {
        'name': 'Pago recibido',
        'category': 'pago',
        'content': 'Hola {{cliente}}, recibimos su pago de {{monto}} para la orden {{folio}}. ¡Gracias!',
    },
    {
        'name': 'Recordatorio de pago',
        'category': 'pago',
        'content': 'Hola {{cliente}}, le recordamos que la orden {{folio}} tiene un saldo pendiente de {{saldo}}.',
    },
]


def seed_whatsapp_templates(session) -> int:
    """Insert the default templates that do not exist yet (matched by name)."""
    existing = {name for (name,) in session.query(WhatsAppTemplate.name)}
    created = 0
    for data in DEFAULT_TEMPLATES:
        if data['name'] in existing:
            continue
        session.add(WhatsAppTemplate(
            name=data['name'],
            category=data['category'],
            content=data['content'],
            variables=extract_template_variables(data['content']),
            language='es',
            is_active=True
        ))
        created += 1
    session.commit()
    return created


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the database tables."""
        create_all()
        click.echo(click.style('✅ Tablas creadas', fg='green'))

    @app.cli.command('seed-whatsapp-templates')
    def seed_templates_command():
        """Load the default WhatsApp templates."""
        try:
            created = seed_whatsapp_templates(db_session)
        except SQLAlchemyError as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error al crear plantillas: {str(e)}', fg='red'))
            return

        click.echo(click.style(f'✅ {created} plantilla(s) creada(s)', fg='green', bold=True))
