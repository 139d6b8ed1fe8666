"""
Unit tests for RowCountEstimator.
"""

import pytest
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock
import sys

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from sql_export.core.codec import ColumnDescriptor
from sql_export.errors import QueryError
from sql_export.pipeline.estimator import RowCountEstimator


class TestRowCountEstimator:
    """Choice of estimate query and casting of its result."""

    def setup_method(self):
        self.columns = [ColumnDescriptor("id", "INT"),
                        ColumnDescriptor("name", "VARCHAR")]

    def test_count_without_index(self):
        estimator = RowCountEstimator("users")
        assert estimator.build_query(self.columns) == "SELECT COUNT(*) FROM users"

    def test_max_with_index_present(self):
        estimator = RowCountEstimator("users", index_column="id")
        assert estimator.build_query(self.columns) == "SELECT MAX(id) FROM users"

    def test_count_when_index_not_in_result(self):
        estimator = RowCountEstimator("users", index_column="user_id")
        assert estimator.build_query(self.columns) == "SELECT COUNT(*) FROM users"

    def test_estimate_runs_scalar_query(self):
        adapter = Mock()
        adapter.scalar.return_value = 42

        total = RowCountEstimator("users", "id").estimate(adapter, self.columns)

        assert total == 42
        adapter.scalar.assert_called_once_with("SELECT MAX(id) FROM users")

    @pytest.mark.parametrize("raw,expected", [
        (None, 0),
        (-5, 0),
        (Decimal("17"), 17),
        ("23", 23),
        (b"8", 8),
        (3.0, 3),
    ])
    def test_to_total(self, raw, expected):
        assert RowCountEstimator.to_total(raw) == expected

    def test_non_numeric_result_raises(self):
        with pytest.raises(QueryError):
            RowCountEstimator.to_total("abc")

    def test_query_error_propagates(self):
        adapter = Mock()
        adapter.scalar.side_effect = QueryError("no such table")

        with pytest.raises(QueryError):
            RowCountEstimator("users").estimate(adapter, self.columns)
