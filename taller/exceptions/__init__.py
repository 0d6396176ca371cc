"""Custom exceptions for the workshop application."""


class WorkshopError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="Ocurrió un error interno", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['success'] = False
        rv['error'] = self.message
        return rv


class ValidationError(WorkshopError):
    """Caller-supplied input violates a precondition. Nothing was written."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class NotFoundError(WorkshopError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Recurso no encontrado", payload=None):
        super().__init__(message, 404, payload)


class OverpaymentRejected(WorkshopError):
    """Payment would push amount_paid above the order total without an explicit override."""
    def __init__(self, amount, balance):
        message = (
            f"El monto ({amount:.2f}) es mayor al saldo pendiente ({balance:.2f}). "
            "Confirme el sobrepago para continuar."
        )
        super().__init__(message, 409, {
            'amount': str(amount),
            'balance': str(balance),
            'requires_confirmation': True,
        })


class TemplateNotFound(NotFoundError):
    def __init__(self, template_id=None):
        super().__init__('Plantilla no encontrada', {'template_id': template_id})


class TemplateInactive(WorkshopError):
    def __init__(self, template_name=None):
        super().__init__('La plantilla está inactiva', 400, {'template': template_name})


class ConsentRequired(WorkshopError):
    def __init__(self, owner_name=None):
        super().__init__(
            'El cliente no ha dado consentimiento para recibir mensajes de WhatsApp',
            400,
            {'owner': owner_name}
        )


class PersistenceError(WorkshopError):
    """The record store rejected or failed a transaction; it was rolled back."""
    def __init__(self, message="Error al guardar en la base de datos"):
        super().__init__(message, 500)


class ChannelError(WorkshopError):
    """The external delivery channel failed or rejected a message."""
    def __init__(self, message="Error al enviar el mensaje por WhatsApp", error_code=None):
        payload = {'error_code': error_code} if error_code is not None else None
        super().__init__(message, 502, payload)
        self.error_code = error_code
