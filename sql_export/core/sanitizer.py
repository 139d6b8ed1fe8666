"""
Delimiter sanitization for a single named column.
Single responsibility: keep free-text values from breaking column alignment.
"""

from typing import List, Optional, Sequence

from .codec import ColumnDescriptor
from ..utils.logger import get_logger


logger = get_logger()


class ColumnSanitizer:
    """
    Strip the output delimiter from one column, selected by name.

    The output format has no quoting, so this is the only protection
    against a value carrying the delimiter.
    """

    def __init__(self, target: str, delimiter: str):
        """
        Initialize sanitizer.

        Args:
            target: Column name to sanitize (empty disables the rule)
            delimiter: Output delimiter to remove
        """
        self.target = target or ""
        self.delimiter = delimiter
        self.index: Optional[int] = None

    def bind(self, columns: Sequence[ColumnDescriptor]) -> Optional[int]:
        """
        Resolve the target column position.

        Args:
            columns: Ordered column descriptors

        Returns:
            Position of the target column, or None when nothing matches
        """
        self.index = None
        if not self.target:
            return None

        for position, column in enumerate(columns):
            if column.name == self.target:
                self.index = position
                break

        if self.index is None:
            logger.debug("sanitizer.target.missing",
                         column=self.target,
                         available=[c.name for c in columns])
        return self.index

    @property
    def active(self) -> bool:
        return self.index is not None

    def apply(self, encoded: List[str]) -> List[str]:
        """
        Sanitize an encoded row in place.

        Args:
            encoded: Encoded row values

        Returns:
            The same list, with the target column stripped
        """
        if self.index is not None:
            encoded[self.index] = encoded[self.index].replace(self.delimiter, "")
        return encoded
