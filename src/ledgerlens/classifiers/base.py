from abc import ABC, abstractmethod

from ledgerlens.models import CategorizationContext, CategorizationResult, Transaction


class Categorizer(ABC):
    @abstractmethod
    def categorize(
        self, transaction: Transaction, context: CategorizationContext
    ) -> CategorizationResult:
        """Assign a category, confidence and metadata to the transaction."""
        pass
