"""Persistence of transactions and run history."""
from .database import Database
from .materializer import TransactionMaterializer
from .models import EmailMeta, MaterializeOutcome, Transaction, User
from .runs import BatchRunLog
from .transactions import TransactionStore
from .users import UserDirectory

__all__ = [
    "Database",
    "TransactionMaterializer",
    "EmailMeta",
    "MaterializeOutcome",
    "Transaction",
    "User",
    "BatchRunLog",
    "TransactionStore",
    "UserDirectory",
]
