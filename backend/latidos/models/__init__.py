from .tenancy import Organization
from .auth import User, Operator, SessionToken
from .customers import Customer, CustomerCreditTransaction
from .sales import Sale, Payment, PaymentAudit
from .finance import PaymentAccount, LedgerTransaction
from .events import FinanceEvent

__all__ = [
    'Organization',
    'User', 'Operator', 'SessionToken',
    'Customer', 'CustomerCreditTransaction',
    'Sale', 'Payment', 'PaymentAudit',
    'PaymentAccount', 'LedgerTransaction',
    'FinanceEvent',
]
