"""
Stock ledger errors

Raised by the ledger service; the views translate them into HTTP responses
using ``code`` and ``status_code``.
"""


class StockLedgerError(Exception):
    code = 'stock_ledger_error'
    status_code = 400
    default_message = 'Stock movement failed.'

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


class InvalidArgument(StockLedgerError):
    """Malformed input. Not retryable as-is."""
    code = 'invalid_argument'
    status_code = 400
    default_message = 'Invalid stock movement.'


class NotFound(StockLedgerError):
    """The referenced product does not exist."""
    code = 'not_found'
    status_code = 404
    default_message = 'Product not found.'


class InsufficientStock(StockLedgerError):
    """An OUT movement would drive the quantity negative."""
    code = 'insufficient_stock'
    status_code = 422
    default_message = 'Insufficient stock.'


class Conflict(StockLedgerError):
    """Lost a concurrent update race. Safe to retry after re-reading state."""
    code = 'conflict'
    status_code = 409
    default_message = 'Stock changed concurrently, please retry.'
