"""
Typed column values and their SQL literal form.

Rows come back from the driver as plain Python objects. Each one is tagged
with a kind before serialization so that every kind has exactly one literal
representation.
"""

from dataclasses import dataclass
from datetime import datetime, date, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from pymysql.converters import escape_string


class ValueKind(Enum):
    NULL = "null"
    TEXT = "text"
    INTEGER = "integer"
    FLOAT = "float"
    TIMESTAMP = "timestamp"
    BYTES = "bytes"


@dataclass(frozen=True)
class SqlValue:
    """A column value tagged with its kind."""

    kind: ValueKind
    value: Any = None

    @classmethod
    def from_python(cls, value: Any) -> 'SqlValue':
        """
        Tag a driver value.

        Args:
            value: Value as returned by PyMySQL

        Returns:
            SqlValue with the matching kind

        Raises:
            TypeError: for values with no SQL literal form
        """
        if value is None:
            return cls(ValueKind.NULL)
        # bool before int: bool is an int subclass
        if isinstance(value, bool):
            return cls(ValueKind.INTEGER, int(value))
        if isinstance(value, int):
            return cls(ValueKind.INTEGER, value)
        if isinstance(value, (float, Decimal)):
            return cls(ValueKind.FLOAT, value)
        if isinstance(value, (datetime, date)):
            return cls(ValueKind.TIMESTAMP, value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(ValueKind.BYTES, bytes(value))
        if isinstance(value, timedelta):
            return cls(ValueKind.TEXT, format_time_value(value))
        if isinstance(value, time):
            return cls(ValueKind.TEXT, value.strftime('%H:%M:%S'))
        if isinstance(value, str):
            return cls(ValueKind.TEXT, value)
        if isinstance(value, (set, frozenset)):
            # SET columns
            return cls(ValueKind.TEXT, ','.join(sorted(value)))
        raise TypeError(f"Unsupported column value type: {type(value).__name__}")

    def to_sql(self) -> str:
        """Render the value as a MySQL literal."""
        if self.kind is ValueKind.NULL:
            return "NULL"
        if self.kind is ValueKind.TEXT:
            return f"'{escape_string(self.value)}'"
        if self.kind is ValueKind.INTEGER:
            return str(self.value)
        if self.kind is ValueKind.FLOAT:
            if isinstance(self.value, Decimal):
                # fixed-point; exponent notation would be read back as a double
                return format(self.value, 'f')
            return repr(self.value)
        if self.kind is ValueKind.TIMESTAMP:
            if isinstance(self.value, datetime):
                return f"'{self.value.strftime('%Y-%m-%d %H:%M:%S')}'"
            return f"'{self.value.strftime('%Y-%m-%d')}'"
        if self.kind is ValueKind.BYTES:
            return f"X'{self.value.hex()}'"
        raise ValueError(f"Unknown value kind: {self.kind}")


def format_time_value(value: timedelta) -> str:
    """Format a TIME column (a timedelta in PyMySQL) as [-]HH:MM:SS."""
    total_seconds = int(value.total_seconds())
    sign = '-' if total_seconds < 0 else ''
    total_seconds = abs(total_seconds)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"


def to_sql_literal(value: Any) -> str:
    return SqlValue.from_python(value).to_sql()


def quote_identifier(name: str) -> str:
    """Backtick-quote a database, table or column name."""
    return "`" + name.replace("`", "``") + "`"
