"""
Row count estimation.
Single responsibility: produce the progress denominator for an export.
"""

from decimal import Decimal
from typing import Any, Sequence

from ..adapters.database import DatabaseAdapter
from ..core.codec import ColumnDescriptor
from ..errors import QueryError
from ..utils.logger import get_logger


logger = get_logger()


class RowCountEstimator:
    """
    Estimate how many rows an export will stream.

    With an index column that appears in the result, ``MAX(index)`` stands in
    for the row count, which is cheap on large tables with dense sequential
    keys. Otherwise ``COUNT(*)`` is used. Either way the number is advisory.
    """

    def __init__(self, table: str, index_column: str = ""):
        """
        Initialize estimator.

        Args:
            table: Table the export reads from
            index_column: Optional unique, sequential column name
        """
        self.table = table
        self.index_column = index_column or ""

    def uses_index(self, columns: Sequence[ColumnDescriptor]) -> bool:
        if not self.index_column:
            return False
        return any(column.name == self.index_column for column in columns)

    def build_query(self, columns: Sequence[ColumnDescriptor]) -> str:
        """
        Choose the estimate query.

        Args:
            columns: Column descriptors from the header probe

        Returns:
            ``SELECT MAX(<index>) FROM <table>`` or ``SELECT COUNT(*) FROM <table>``
        """
        if self.uses_index(columns):
            return f"SELECT MAX({self.index_column}) FROM {self.table}"
        if self.index_column:
            logger.debug("estimator.index.missing",
                         index=self.index_column,
                         table=self.table)
        return f"SELECT COUNT(*) FROM {self.table}"

    @staticmethod
    def to_total(value: Any) -> int:
        """
        Cast an estimate result to a non-negative integer.

        Args:
            value: Scalar returned by the estimate query

        Returns:
            Estimated total; NULL and negative results become 0

        Raises:
            QueryError: If the result is not numeric
        """
        if value is None:
            return 0
        try:
            if isinstance(value, (bytes, bytearray)):
                value = value.decode("ascii")
            if isinstance(value, str):
                value = Decimal(value.strip())
            total = int(value)
        except (ValueError, TypeError, ArithmeticError) as e:
            raise QueryError(f"row estimate {value!r} is not a number") from e
        return max(total, 0)

    def estimate(self, adapter: DatabaseAdapter,
                 columns: Sequence[ColumnDescriptor]) -> int:
        """
        Run the estimate query.

        Args:
            adapter: Connected database adapter
            columns: Column descriptors from the header probe

        Returns:
            Estimated total row count

        Raises:
            QueryError: If the estimate query fails
        """
        sql = self.build_query(columns)
        total = self.to_total(adapter.scalar(sql))

        logger.info("estimator.total",
                   table=self.table,
                   method="max" if self.uses_index(columns) else "count",
                   total=total)
        return total
