from clarity.core.repositories.base import Repository, SaveOutcome
from clarity.core.repositories.history import RewriteHistoryRepository
from clarity.core.repositories.usage import UsageLedger

__all__ = [
    "Repository",
    "SaveOutcome",
    "RewriteHistoryRepository",
    "UsageLedger",
]
