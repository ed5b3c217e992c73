"""
Domain errors raised by the BOL and ground inventory services.

Each error carries a user-facing message and the HTTP status the API layer
responds with. Services raise these; views translate them.
"""


class DomainError(Exception):
    status_code = 400
    default_message = 'Request could not be processed'

    def __init__(self, message=None, **detail):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def as_response_data(self):
        data = {'error': self.message}
        if self.detail:
            data['detail'] = self.detail
        return data


class ValidationError(DomainError):
    """Malformed or missing input. Raised before any write."""
    default_message = 'Invalid input data'


class Conflict(DomainError):
    """Transition attempted on a record not in the required state."""
    status_code = 409
    default_message = 'Record is not in a state that allows this action'


class NotFound(DomainError):
    status_code = 404
    default_message = 'Record not found'


class ScopeMismatch(DomainError):
    """Lot belongs to a different customer or material."""
    default_message = 'Ground inventory lot does not match this customer or material'


class Unavailable(DomainError):
    default_message = 'Ground inventory lot is not available'


class InsufficientQuantity(DomainError):
    default_message = 'Ground inventory lot does not have enough remaining weight to complete this BOL'


class PersistenceFailure(DomainError):
    status_code = 500
    default_message = 'Storage error while saving'
