"""
Business logic services.
"""

from schoolerp.services.audit import AuditService
from schoolerp.services.auth import AuthService
from schoolerp.services.finance import FinanceService
from schoolerp.services.ledger import TokenLedger
from schoolerp.services.mailer import Mailer
from schoolerp.services.school import SchoolService
from schoolerp.services.user import UserService

__all__ = [
    "AuditService",
    "AuthService",
    "FinanceService",
    "Mailer",
    "SchoolService",
    "TokenLedger",
    "UserService",
]
