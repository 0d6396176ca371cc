import pytest
from decimal import Decimal
import uuid

from taller import create_app
from taller.database import db_session, create_all, drop_all
from taller.exceptions import ChannelError
from taller.models import Owner, Vehicle, Order, WhatsAppTemplate


class FakeChannel:
    """Records sends instead of calling Twilio."""

    def __init__(self, configured=True):
        self.configured = configured
        self.sent = []
        self.fail_with = None

    @property
    def is_configured(self):
        return self.configured

    def status(self):
        if not self.configured:
            return {'configured': False, 'mode': 'not_configured'}
        return {'configured': True, 'mode': 'sandbox', 'whatsapp_number': '+14155238886'}

    def send(self, to, body):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((to, body))
        return f'SM{len(self.sent):032d}'

    def validate_signature(self, url, params, signature):
        return signature == 'valid'


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestConfig')
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Fresh schema per test on the in-memory database."""
    create_all()
    yield db_session
    db_session.rollback()
    db_session.remove()
    drop_all()


@pytest.fixture(scope='function')
def channel(app):
    """Inject a fake WhatsApp channel into the app."""
    fake = FakeChannel()
    app.extensions['whatsapp_channel'] = fake
    yield fake
    app.extensions.pop('whatsapp_channel', None)


@pytest.fixture(scope='function')
def failing_channel(channel):
    channel.fail_with = ChannelError('Número de WhatsApp inválido', error_code=63016)
    return channel


@pytest.fixture(scope='function')
def owner(session):
    """Owner who accepted WhatsApp messages."""
    owner = Owner(
        name='Carlos Martínez',
        phone='7931-2064',
        email='carlos@example.com',
        whatsapp_consent=True
    )
    session.add(owner)
    session.commit()
    return owner


@pytest.fixture(scope='function')
def owner_without_consent(session):
    owner = Owner(name='Ana López', phone='7000-1111', whatsapp_consent=False)
    session.add(owner)
    session.commit()
    return owner


@pytest.fixture(scope='function')
def vehicle(session, owner):
    vehicle = Vehicle(owner_id=owner.id, plate='P123-456', make='Toyota', model='Corolla', year=2018)
    session.add(vehicle)
    session.commit()
    return vehicle


def make_order(session, owner, vehicle, total='100.00', **kwargs):
    order = Order(
        folio=f'OT-{str(uuid.uuid4())[:8]}',
        owner_id=owner.id,
        vehicle_id=vehicle.id,
        reason='Servicio de mantenimiento',
        total=Decimal(total),
        **kwargs
    )
    session.add(order)
    session.commit()
    return order


@pytest.fixture(scope='function')
def order(session, owner, vehicle):
    """Order with a total of 100.00 and no payments."""
    return make_order(session, owner, vehicle)


@pytest.fixture(scope='function')
def empty_order(session, owner, vehicle):
    """Order with no budget lines (total 0)."""
    return make_order(session, owner, vehicle, total='0.00')


@pytest.fixture(scope='function')
def template(session):
    content = 'Hola {{cliente}}, su vehículo {{vehiculo}} está listo. Orden {{folio}}.'
    template = WhatsAppTemplate(
        name='Vehículo listo',
        category='orden',
        content=content,
        variables=['cliente', 'vehiculo', 'folio'],
        is_active=True
    )
    session.add(template)
    session.commit()
    return template


@pytest.fixture(scope='function')
def inactive_template(session):
    template = WhatsAppTemplate(
        name='Promoción vieja',
        category='marketing',
        content='Hola {{cliente}}',
        variables=['cliente'],
        is_active=False
    )
    session.add(template)
    session.commit()
    return template
