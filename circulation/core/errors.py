"""
Errores de dominio del motor de circulación.

Los servicios lanzan estas excepciones y main.py las traduce a respuestas
HTTP con el status_code de cada clase.
"""


class CirculationError(Exception):
    status_code: int = 400
    code: str = "circulation_error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.__class__.__name__
        super().__init__(self.detail)


class NotFound(CirculationError):
    status_code = 404
    code = "not_found"


class NoSuchLoan(NotFound):
    code = "no_such_loan"


class InvalidState(CirculationError):
    status_code = 400
    code = "invalid_state"


class AlreadyProcessed(InvalidState):
    code = "already_processed"


class ItemUnavailable(CirculationError):
    status_code = 409
    code = "item_unavailable"


class DuplicateRequest(CirculationError):
    status_code = 409
    code = "duplicate_request"


class TransientStoreFailure(CirculationError):
    status_code = 503
    code = "transient_store_failure"
