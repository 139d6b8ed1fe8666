"""
Type-aware value encoding.
Single responsibility: turn driver values into their canonical text form.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, List, Sequence, Union

import numpy as np

from ..errors import TypeCodecError


class ColumnType(Enum):
    """Closed set of value encodings, resolved once per column."""

    DECIMAL = "decimal"
    DOUBLE = "double"
    FLOAT = "float"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    DATETIME = "datetime"
    DATE = "date"
    BOOLEAN = "boolean"
    BLOB = "blob"
    TEXT = "text"
    OTHER = "other"

    @classmethod
    def from_tag(cls, tag: str) -> "ColumnType":
        """
        Resolve a normalized driver type tag.

        Matching is case-sensitive; unknown tags fall back to OTHER.

        Args:
            tag: Type tag as reported by the database adapter

        Returns:
            Column type used for encoding
        """
        return TAG_TYPES.get(tag, cls.OTHER)


TAG_TYPES: Dict[str, ColumnType] = {
    "DECIMAL": ColumnType.DECIMAL,
    "DOUBLE": ColumnType.DOUBLE,
    "FLOAT": ColumnType.FLOAT,
    "SMALLINT": ColumnType.INT16,
    "TINYINT": ColumnType.INT16,
    "INT": ColumnType.INT32,
    "MEDIUMINT": ColumnType.INT32,
    "INTEGER": ColumnType.INT32,
    "BIGINT": ColumnType.INT64,
    "INT UNSIGNED": ColumnType.UINT32,
    "DATETIME": ColumnType.DATETIME,
    "DATE": ColumnType.DATE,
    "BOOLEAN": ColumnType.BOOLEAN,
    "BOOL": ColumnType.BOOLEAN,
    "TINYBLOB": ColumnType.BLOB,
    "BLOB": ColumnType.BLOB,
    "MEDIUMBLOB": ColumnType.BLOB,
    "LONGBLOB": ColumnType.BLOB,
    "CHAR": ColumnType.TEXT,
    "VARCHAR": ColumnType.TEXT,
}


@dataclass(frozen=True)
class ColumnDescriptor:
    """One result-set column, as discovered by the header probe."""

    name: str
    declared_type: str
    column_type: ColumnType = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "column_type",
                           ColumnType.from_tag(self.declared_type))


BINARY_TYPES = (bytes, bytearray, memoryview)


def _as_text(value: Any) -> Any:
    """Decode raw bytes of a textual number or date."""
    if isinstance(value, BINARY_TYPES):
        return bytes(value).decode("ascii").strip()
    if isinstance(value, str):
        return value.strip()
    return value


def _to_integer(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    value = _as_text(value)
    if isinstance(value, str):
        return int(value)
    if isinstance(value, Decimal) and value == value.to_integral_value():
        return int(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise TypeError(f"{type(value).__name__} value {value!r} is not an integer")


def _to_float(value: Any) -> float:
    value = _as_text(value)
    if isinstance(value, (int, float, Decimal, str)):
        return float(value)
    raise TypeError(f"{type(value).__name__} value {value!r} is not a number")


def _integer_encoder(low: int, high: int) -> Callable[[Any], str]:
    def encode(value: Any) -> str:
        number = _to_integer(value)
        if not low <= number <= high:
            raise ValueError(f"{number} outside [{low}, {high}]")
        return str(number)
    return encode


def _encode_decimal(value: Any) -> str:
    value = _as_text(value)
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, float):
        number = Decimal(repr(value))
    elif isinstance(value, (int, str)):
        try:
            number = Decimal(value)
        except InvalidOperation:
            raise ValueError(f"{value!r} is not a decimal") from None
    else:
        raise TypeError(f"{type(value).__name__} value {value!r} is not a decimal")

    if not number.is_finite():
        raise ValueError(f"non-finite decimal {number}")
    return format(number, "f")


def _encode_double(value: Any) -> str:
    return np.format_float_positional(np.float64(_to_float(value)),
                                      unique=True, trim="-")


def _encode_float(value: Any) -> str:
    return np.format_float_positional(np.float32(_to_float(value)),
                                      unique=True, trim="-")


def _encode_datetime(value: Any) -> str:
    value = _as_text(value)
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise TypeError(f"{type(value).__name__} value {value!r} is not a timestamp")

    # Drivers hand over DATETIME without a zone; it is stored as UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return str(value.astimezone())


def _encode_date(value: Any) -> str:
    value = _as_text(value)
    if isinstance(value, str):
        value = date.fromisoformat(value)
    if isinstance(value, datetime) or not isinstance(value, date):
        raise TypeError(f"{type(value).__name__} value {value!r} is not a date")
    return value.isoformat()


def _encode_blob(value: Any) -> str:
    if isinstance(value, BINARY_TYPES):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    raise TypeError(f"{type(value).__name__} value is not binary")


def _encode_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, BINARY_TYPES):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


ENCODERS: Dict[ColumnType, Callable[[Any], str]] = {
    ColumnType.DECIMAL: _encode_decimal,
    ColumnType.DOUBLE: _encode_double,
    ColumnType.FLOAT: _encode_float,
    ColumnType.INT16: _integer_encoder(-2**15, 2**15 - 1),
    ColumnType.INT32: _integer_encoder(-2**31, 2**31 - 1),
    ColumnType.INT64: _integer_encoder(-2**63, 2**63 - 1),
    ColumnType.UINT32: _integer_encoder(0, 2**32 - 1),
    ColumnType.DATETIME: _encode_datetime,
    ColumnType.DATE: _encode_date,
    # Booleans are small integers on the wire and stay numeric in the output
    ColumnType.BOOLEAN: _integer_encoder(-2**15, 2**15 - 1),
    ColumnType.BLOB: _encode_blob,
    ColumnType.TEXT: _encode_text,
    ColumnType.OTHER: _encode_text,
}

DECODE_ERRORS = (ValueError, TypeError, ArithmeticError)


def encode_value(column_type: Union[ColumnType, str], value: Any) -> str:
    """
    Encode a single value.

    Args:
        column_type: Column type, or a raw driver type tag
        value: Driver value (None for SQL NULL)

    Returns:
        Canonical text form; NULL encodes as an empty string

    Raises:
        TypeCodecError: If the value cannot be decoded under the type
    """
    if isinstance(column_type, str):
        tag = column_type
        column_type = ColumnType.from_tag(column_type)
    else:
        tag = column_type.name

    if value is None:
        return ""
    try:
        return ENCODERS[column_type](value)
    except DECODE_ERRORS as e:
        raise TypeCodecError(f"cannot decode {value!r} as {tag}: {e}",
                             type_tag=tag) from e


class RowEncoder:
    """
    Encode whole rows against a fixed column sequence.
    """

    def __init__(self, columns: Sequence[ColumnDescriptor]):
        """
        Initialize row encoder.

        Args:
            columns: Ordered column descriptors from the header probe
        """
        self.columns = tuple(columns)
        self._encoders = [ENCODERS[column.column_type] for column in self.columns]

    @property
    def width(self) -> int:
        return len(self.columns)

    def encode(self, row: Sequence[Any]) -> List[str]:
        """
        Encode one row by position.

        Args:
            row: Raw driver values, one per column

        Returns:
            Encoded row, same length as the column sequence

        Raises:
            TypeCodecError: If the row shape or any value does not decode
        """
        if len(row) != len(self._encoders):
            raise TypeCodecError(
                f"row has {len(row)} values but the header has "
                f"{len(self._encoders)} columns"
            )

        encoded = []
        for column, encoder, value in zip(self.columns, self._encoders, row):
            if value is None:
                encoded.append("")
                continue
            try:
                encoded.append(encoder(value))
            except DECODE_ERRORS as e:
                raise TypeCodecError(
                    f"cannot decode column '{column.name}' "
                    f"as {column.declared_type}: {e}",
                    column=column.name,
                    type_tag=column.declared_type,
                ) from e
        return encoded
