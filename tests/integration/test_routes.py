"""
Integration tests for the HTTP surface: orders API, WhatsApp API, webhook and metrics.
"""

import pytest
from decimal import Decimal
from twilio.request_validator import RequestValidator
from taller.models import Order, WhatsAppMessage, WhatsAppTemplate
from taller.services.notification_service import send_message
from taller.services.whatsapp_channel import TwilioWhatsAppChannel

WEBHOOK_URL = 'http://localhost/webhooks/whatsapp'


@pytest.fixture
def twilio_channel(app):
    """Real Twilio channel built from TestConfig (never sends in these tests)."""
    channel = TwilioWhatsAppChannel.from_config(app.config)
    app.extensions['whatsapp_channel'] = channel
    yield channel
    app.extensions.pop('whatsapp_channel', None)


class TestOrdersApi:

    def test_summary(self, client, order):
        order_id = order.id
        response = client.get(f'/api/orders/{order_id}')
        assert response.status_code == 200
        body = response.get_json()
        assert body['success'] is True
        assert body['data']['total'] == '100.00'
        assert body['data']['balance'] == '100.00'
        assert body['data']['payment_status'] == 'pending'

    def test_unknown_order(self, client, session):
        response = client.get('/api/orders/999')
        assert response.status_code == 404
        assert response.get_json()['success'] is False

    def test_register_payment(self, client, session, order):
        order_id = order.id
        response = client.post(f'/api/orders/{order_id}/payments', json={
            'amount': '60.00', 'payment_method': 'cash', 'payment_date': '2024-05-10'
        })
        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['payment']['amount'] == '60.00'
        assert data['payment']['payment_date'] == '2024-05-10'
        assert data['order']['amount_paid'] == '60.00'
        assert data['order']['payment_status'] == 'partial'

        listing = client.get(f'/api/orders/{order_id}/payments').get_json()
        assert len(listing['data']) == 1

    def test_overpayment_needs_confirmation(self, client, session, order):
        order_id = order.id
        response = client.post(f'/api/orders/{order_id}/payments', json={
            'amount': '150', 'payment_method': 'cash'
        })
        assert response.status_code == 409
        body = response.get_json()
        assert body['requires_confirmation'] is True
        assert session.get(Order, order_id).amount_paid == Decimal('0.00')

        response = client.post(f'/api/orders/{order_id}/payments', json={
            'amount': '150', 'payment_method': 'cash', 'allow_overpayment': True
        })
        assert response.status_code == 201
        assert response.get_json()['data']['order']['balance'] == '-50.00'

    @pytest.mark.parametrize('amount', ['0', '-10', 'abc'])
    def test_invalid_amount(self, client, session, order, amount):
        order_id = order.id
        response = client.post(f'/api/orders/{order_id}/payments', json={
            'amount': amount, 'payment_method': 'cash'
        })
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    @pytest.mark.parametrize('raw', ['NaN', 'Infinity', '1e400'])
    def test_non_finite_amount(self, client, session, order, raw):
        order_id = order.id
        response = client.post(
            f'/api/orders/{order_id}/payments',
            data=f'{{"amount": {raw}, "payment_method": "cash", "allow_overpayment": true}}',
            content_type='application/json'
        )
        assert response.status_code == 400
        assert response.get_json()['success'] is False
        assert session.get(Order, order_id).amount_paid == Decimal('0.00')

    def test_array_body_rejected(self, client, session, order):
        order_id = order.id
        response = client.post(f'/api/orders/{order_id}/payments', json=[{'amount': '10'}])
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_invalid_sort_order(self, client, session, empty_order):
        order_id = empty_order.id
        response = client.post(f'/api/orders/{order_id}/budget-lines', json={
            'description': 'Batería', 'quantity': 1, 'unit_price': '10.00', 'sort_order': 'primero'
        })
        assert response.status_code == 400

    def test_json_api_works_with_csrf_enabled(self, app, client, session, order, monkeypatch):
        monkeypatch.setitem(app.config, 'WTF_CSRF_ENABLED', True)
        order_id = order.id

        response = client.post(f'/api/orders/{order_id}/payments', json={
            'amount': '10', 'payment_method': 'cash'
        })
        assert response.status_code == 201

        response = client.post(f'/api/orders/{order_id}/budget-lines', json={
            'description': 'Filtro', 'quantity': 1, 'unit_price': '5.00'
        })
        assert response.status_code == 201

    def test_budget_lines_and_approval(self, client, session, empty_order):
        order_id = empty_order.id
        response = client.post(f'/api/orders/{order_id}/budget-lines', json={
            'type': 'parts', 'description': 'Batería', 'quantity': 2,
            'unit_price': '10.00', 'tax_rate': '0.13'
        })
        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['line']['total'] == '22.60'
        assert data['order']['total'] == '22.60'
        line_id = data['line']['id']

        response = client.patch(f'/api/orders/{order_id}/budget-lines/{line_id}', json={'quantity': 1})
        assert response.get_json()['data']['order']['total'] == '11.30'

        response = client.post(f'/api/orders/{order_id}/budget/approve')
        assert response.status_code == 200
        assert response.get_json()['data']['budget_approved'] is True
        assert response.get_json()['data']['status'] == 'approved'

        response = client.delete(f'/api/orders/{order_id}/budget-lines/{line_id}')
        assert response.get_json()['data']['order']['total'] == '0.00'

    def test_pdf(self, client, session, order):
        order_id = order.id
        client.post(f'/api/orders/{order_id}/budget-lines', json={
            'description': 'Cambio de aceite', 'quantity': 1, 'unit_price': '100.00'
        })
        client.post(f'/api/orders/{order_id}/payments', json={'amount': '40', 'payment_method': 'card'})

        response = client.get(f'/api/orders/{order_id}/pdf')
        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')


class TestWhatsAppApi:

    def _payload(self, owner, template, order=None):
        payload = {
            'owner_id': owner.id,
            'template_id': template.id,
            'variables': {'cliente': 'Carlos', 'vehiculo': 'Toyota Corolla', 'folio': 'OT-1'},
        }
        if order is not None:
            payload['order_id'] = order.id
        return payload

    def test_send(self, client, session, owner, template, order, channel):
        response = client.post('/api/whatsapp/send', json=self._payload(owner, template, order))
        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['status'] == 'sent'
        assert data['phone_number'] == '7931-2064'
        assert len(channel.sent) == 1

    def test_send_not_configured(self, client, session, owner, template, channel):
        channel.configured = False
        response = client.post('/api/whatsapp/send', json=self._payload(owner, template))
        assert response.status_code == 503
        assert session.query(WhatsAppMessage).count() == 0

    def test_send_channel_failure(self, client, session, owner, template, failing_channel):
        response = client.post('/api/whatsapp/send', json=self._payload(owner, template))
        assert response.status_code == 502
        body = response.get_json()
        assert body['success'] is False
        assert body['data']['status'] == 'failed'

    def test_send_without_consent(self, client, session, owner_without_consent, template, channel):
        response = client.post('/api/whatsapp/send', json=self._payload(owner_without_consent, template))
        assert response.status_code == 400
        assert channel.sent == []

    def test_send_unknown_owner_without_phone(self, client, session, template, channel):
        response = client.post('/api/whatsapp/send', json={
            'owner_id': 999, 'template_id': template.id, 'variables': {}
        })
        assert response.status_code == 404
        assert response.get_json()['error'] == 'Cliente no encontrado'
        assert session.query(WhatsAppMessage).count() == 0

    def test_send_array_body_rejected(self, client, session, channel):
        response = client.post('/api/whatsapp/send', json=[1, 2])
        assert response.status_code == 400

    def test_send_with_csrf_enabled(self, app, client, session, owner, template, channel, monkeypatch):
        monkeypatch.setitem(app.config, 'WTF_CSRF_ENABLED', True)
        response = client.post('/api/whatsapp/send', json=self._payload(owner, template))
        assert response.status_code == 201

        response = client.post('/api/whatsapp/templates', json={'name': 'Cita', 'content': 'Hola {{cliente}}'})
        assert response.status_code == 201

    def test_status(self, client, channel):
        body = client.get('/api/whatsapp/status').get_json()
        assert body['data']['configured'] is True

    def test_stats(self, client, session, owner, template, channel):
        client.post('/api/whatsapp/send', json=self._payload(owner, template))
        body = client.get('/api/whatsapp/stats').get_json()
        assert body['data']['total_messages'] == 1
        assert body['data']['messages_by_status']['sent'] == 1

    def test_templates(self, client, session):
        response = client.post('/api/whatsapp/templates', json={
            'name': 'Cita', 'content': 'Hola {{cliente}}, su cita es el {{fecha}}'
        })
        assert response.status_code == 201
        created = response.get_json()['data']
        assert created['variables'] == ['cliente', 'fecha']

        response = client.post(f"/api/whatsapp/templates/{created['id']}/duplicate")
        assert response.status_code == 201
        assert response.get_json()['data']['is_active'] is False

        listed = client.get('/api/whatsapp/templates').get_json()['data']
        assert [t['name'] for t in listed] == ['Cita']
        assert session.query(WhatsAppTemplate).count() == 2


class TestWhatsAppWebhook:

    def _send(self, session, owner, template, channel):
        message = send_message(owner.id, template.id, {'cliente': 'Carlos'}, owner.phone,
                               channel=channel, session=session)
        return message.id, message.external_id

    def test_delivered_callback(self, client, session, owner, template, channel):
        message_id, sid = self._send(session, owner, template, channel)

        response = client.post('/webhooks/whatsapp', data={
            'MessageSid': sid, 'MessageStatus': 'delivered'
        }, headers={'X-Twilio-Signature': 'valid'})

        assert response.status_code == 200
        assert response.get_json()['received'] is True
        message = session.get(WhatsAppMessage, message_id)
        assert message.status == 'delivered'
        assert message.delivered_at is not None

    def test_sms_field_names(self, client, session, owner, template, channel):
        message_id, sid = self._send(session, owner, template, channel)

        client.post('/webhooks/whatsapp', data={
            'SmsSid': sid, 'SmsStatus': 'read'
        }, headers={'X-Twilio-Signature': 'valid'})

        assert session.get(WhatsAppMessage, message_id).status == 'read'

    def test_invalid_signature_skips_update(self, client, session, owner, template, channel):
        message_id, sid = self._send(session, owner, template, channel)

        response = client.post('/webhooks/whatsapp', data={
            'MessageSid': sid, 'MessageStatus': 'delivered'
        }, headers={'X-Twilio-Signature': 'forged'})

        assert response.status_code == 200
        assert response.get_json()['processed'] is False
        assert session.get(WhatsAppMessage, message_id).status == 'sent'

    def test_unknown_sid_acknowledged(self, client, session, channel):
        response = client.post('/webhooks/whatsapp', data={
            'MessageSid': 'SMunknown', 'MessageStatus': 'delivered'
        }, headers={'X-Twilio-Signature': 'valid'})
        assert response.status_code == 200
        assert response.get_json() == {'received': True, 'processed': False}

    def test_missing_fields_acknowledged(self, client, session, channel):
        response = client.post('/webhooks/whatsapp', data={}, headers={'X-Twilio-Signature': 'valid'})
        assert response.status_code == 200

    def test_real_twilio_signature(self, client, session, owner, template, channel, twilio_channel):
        message_id, sid = self._send(session, owner, template, channel)
        params = {'MessageSid': sid, 'MessageStatus': 'delivered'}
        signature = RequestValidator('test-auth-token').compute_signature(WEBHOOK_URL, params)

        response = client.post('/webhooks/whatsapp', data=params, headers={'X-Twilio-Signature': signature})

        assert response.status_code == 200
        assert response.get_json()['processed'] is True
        assert session.get(WhatsAppMessage, message_id).status == 'delivered'

    def test_health(self, client):
        response = client.get('/webhooks/whatsapp')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'ok'


def test_metrics_endpoint(client):
    response = client.get('/metrics')
    assert response.status_code == 200
    assert b'whatsapp_messages_total' in response.data
    assert b'whatsapp_webhooks_total' in response.data


def test_seed_templates_command(app, session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['seed-whatsapp-templates'])
    assert result.exit_code == 0
    assert '5 plantilla(s)' in result.output

    result = runner.invoke(args=['seed-whatsapp-templates'])
    assert '0 plantilla(s)' in result.output
    assert session.query(WhatsAppTemplate).count() == 5
