"""Models package - exports all SQLAlchemy models."""
from taller.models.owner import Owner, OwnerType
from taller.models.vehicle import Vehicle
from taller.models.order import Order, OrderStatus, PaymentStatus
from taller.models.budget_line import BudgetLine, BudgetLineType
from taller.models.payment import Payment, PaymentMethod, normalize_payment_method
from taller.models.timeline_entry import TimelineEntry, TimelineEntryType
from taller.models.whatsapp_template import WhatsAppTemplate
from taller.models.whatsapp_message import WhatsAppMessage, MessageStatus

__all__ = [
    'Owner', 'OwnerType', 'Vehicle',
    'Order', 'OrderStatus', 'PaymentStatus',
    'BudgetLine', 'BudgetLineType',
    'Payment', 'PaymentMethod', 'normalize_payment_method',
    'TimelineEntry', 'TimelineEntryType',
    'WhatsAppTemplate', 'WhatsAppMessage', 'MessageStatus',
]
