"""
Header probing.
Single responsibility: discover result columns with a bounded preview query.
"""

import re
from typing import List

from ..adapters.database import DatabaseAdapter
from ..core.codec import ColumnDescriptor
from ..utils.logger import get_logger


logger = get_logger()

PROBE_LIMIT = 10

# From the first "LIMIT <n>[, <n>]" to the end of the query
LIMIT_CLAUSE = re.compile(r"\blimit\s+\d+(\s*,\s*\d+)?\b.*",
                          re.IGNORECASE | re.DOTALL)


def strip_limit_clause(sql: str) -> str:
    """
    Remove a trailing LIMIT clause and any trailing terminator.

    Args:
        sql: User query

    Returns:
        Query without its LIMIT clause

    Examples:
        >>> strip_limit_clause("SELECT id FROM users LIMIT 100000")
        'SELECT id FROM users'
        >>> strip_limit_clause("select * from t limit 10, 20;")
        'select * from t'
    """
    stripped = LIMIT_CLAUSE.sub("", sql, count=1)
    return stripped.rstrip().rstrip(";").rstrip()


def build_probe_query(sql: str, limit: int = PROBE_LIMIT) -> str:
    """Rewrite a user query into its bounded header preview."""
    return f"{strip_limit_clause(sql)} LIMIT {limit}"


class HeaderProber:
    """
    Discover ordered column names and types without streaming the full result.
    """

    def __init__(self, limit: int = PROBE_LIMIT):
        """
        Initialize prober.

        Args:
            limit: Row cap appended to the preview query
        """
        self.limit = limit

    def probe(self, adapter: DatabaseAdapter, sql: str) -> List[ColumnDescriptor]:
        """
        Run the preview query and describe its columns.

        Args:
            adapter: Connected database adapter
            sql: User query

        Returns:
            Ordered column descriptors

        Raises:
            QueryError: If the preview query fails
        """
        probe_sql = build_probe_query(sql, self.limit)
        logger.debug("probe.query", sql=probe_sql)

        columns = [ColumnDescriptor(name, tag)
                   for name, tag in adapter.preview(probe_sql)]

        logger.info("probe.headers.fetched",
                   columns=len(columns),
                   types=",".join(c.declared_type for c in columns))
        return columns
