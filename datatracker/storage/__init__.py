# DataTracker storage subpackage
from .ledger import DailyLedger, local_date_key

__all__ = ['DailyLedger', 'local_date_key']
