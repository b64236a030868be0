"""
Services of the Library Circulation Engine.

- inventory: the ledger owning each book's available-copies counter
- circulation: borrow, reserve, return and cancel rules
- fines: overdue scan, manual fines and payments
- catalog / members: maintenance of books and members
- errors: the typed errors every service raises
"""

from . import errors
from .catalog import CatalogService
from .circulation import CirculationEngine
from .errors import CirculationError
from .fines import AccrualSummary, FineAccrualService
from .inventory import InventoryLedger
from .locks import Deadline, KeyedLockRegistry, get_lock_registry
from .members import MemberService, MemberSummary

__all__ = [
    "AccrualSummary",
    "CatalogService",
    "CirculationEngine",
    "CirculationError",
    "Deadline",
    "FineAccrualService",
    "InventoryLedger",
    "KeyedLockRegistry",
    "MemberService",
    "MemberSummary",
    "errors",
    "get_lock_registry",
]
