"""
Consolidated type handling for model attributes.

This module provides:
- TypeConverter: Normalize NumPy / pandas scalars to plain Python values
- map_raw_type: Resolve a backend column type to a semantic type
- cast_value: Cast a value to a semantic type (read and write share it)
- Column: Column metadata built from introspection descriptors
- RowAdapter: Convert database rows to dictionaries
"""
import datetime
import decimal
import logging
import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Self

import dateutil.parser
import numpy as np
import pandas as pd

from activemodel.exceptions import TypeConversionError

if TYPE_CHECKING:
    from activemodel.strategy import DatabaseStrategy

logger = logging.getLogger(__name__)

STRING = 'string'
INTEGER = 'integer'
DECIMAL = 'decimal'
FLOAT = 'float'
BOOLEAN = 'boolean'
DATETIME = 'datetime'
DATE = 'date'
TIME = 'time'
BINARY = 'binary'
TEXT = 'text'

SEMANTIC_TYPES = (STRING, INTEGER, DECIMAL, FLOAT, BOOLEAN, DATETIME, DATE, TIME, BINARY, TEXT)

NUMPY_FLOAT_TYPES = (np.floating,)
NUMPY_INT_TYPES = (np.integer, np.unsignedinteger)

_TRUE_STRINGS = {'1', 't', 'true', 'y', 'yes'}
_FALSE_STRINGS = {'0', 'f', 'false', 'n', 'no'}


# Type Converter - NumPy / pandas scalar normalization

def _convert_numpy_value(val: Any) -> Any:
    """Convert NumPy value to Python type."""
    if isinstance(val, np.floating) and np.isnan(val):
        return None

    if isinstance(val, np.datetime64):
        if np.isnat(val):
            return None
        return pd.Timestamp(val).to_pydatetime()

    return val.item()


class TypeConverter:
    """Universal type conversion for bind values.

    Handles NumPy and pandas scalars; everything else passes through.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a database-compatible format."""
        if value is None:
            return None

        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None

        if value is pd.NaT:
            return None

        if isinstance(value, (*NUMPY_FLOAT_TYPES, *NUMPY_INT_TYPES, np.bool_, np.datetime64)):
            return _convert_numpy_value(value)

        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()

        if value is pd.NA:
            return None

        return value

    @staticmethod
    def convert_params(params: Any) -> Any:
        """Convert a collection of parameters for database operations."""
        if params is None:
            return None

        if isinstance(params, dict):
            return {k: TypeConverter.convert_value(v) for k, v in params.items()}

        if isinstance(params, list | tuple):
            return type(params)(TypeConverter.convert_value(v) for v in params)

        return TypeConverter.convert_value(params)


# Type Resolution - backend type names -> semantic types

RAW_TYPE_MAP: dict[str, str] = {}

for v in ['int', 'integer', 'bigint', 'smallint', 'tinyint', 'mediumint',
          'int2', 'int4', 'int8', 'serial', 'bigserial', 'smallserial']:
    RAW_TYPE_MAP[v] = INTEGER

for v in ['numeric', 'decimal', 'money']:
    RAW_TYPE_MAP[v] = DECIMAL

for v in ['real', 'double', 'double precision', 'float', 'float4', 'float8',
          'binary_float', 'binary_double']:
    RAW_TYPE_MAP[v] = FLOAT

for v in ['bool', 'boolean']:
    RAW_TYPE_MAP[v] = BOOLEAN

for v in ['datetime', 'timestamp', 'timestamp without time zone',
          'timestamp with time zone', 'timestamptz']:
    RAW_TYPE_MAP[v] = DATETIME

RAW_TYPE_MAP['date'] = DATE

for v in ['time', 'time without time zone', 'time with time zone', 'timetz']:
    RAW_TYPE_MAP[v] = TIME

for v in ['blob', 'bytea', 'binary', 'varbinary', 'raw', 'long raw']:
    RAW_TYPE_MAP[v] = BINARY

for v in ['text', 'clob', 'nclob', 'long', 'json', 'jsonb', 'xml', 'mediumtext', 'longtext']:
    RAW_TYPE_MAP[v] = TEXT

for v in ['varchar', 'character varying', 'char', 'character', 'nchar', 'nvarchar',
          'varchar2', 'nvarchar2', 'bpchar', 'uuid', 'name', 'citext']:
    RAW_TYPE_MAP[v] = STRING

_TYPE_ARGS = re.compile(r'\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)')


def split_raw_type(raw_type: str | None) -> tuple[str, int | None, int | None]:
    """Split ``varchar(20)`` / ``numeric(10,2)`` into name, length and scale.

    >>> split_raw_type('NUMERIC(10, 2)')
    ('numeric', 10, 2)
    >>> split_raw_type('character varying')
    ('character varying', None, None)
    """
    if not raw_type:
        return '', None, None
    raw = raw_type.strip().lower()
    length = scale = None
    match = _TYPE_ARGS.search(raw)
    if match:
        length = int(match.group(1))
        scale = int(match.group(2)) if match.group(2) else None
        raw = (raw[:match.start()] + raw[match.end():]).strip()
    return ' '.join(raw.split()), length, scale


def map_raw_type(raw_type: str | None, scale: int | None = None,
                 overrides: dict[str, str] | None = None) -> str:
    """Resolve a backend type name to a semantic type.

    Priority:
    1. Dialect overrides
    2. Shared lookup table
    3. Default to string

    Oracle-style ``number`` is decimal when its scale is positive, else integer.

    >>> map_raw_type('INTEGER')
    'integer'
    >>> map_raw_type('number', 2), map_raw_type('number', 0)
    ('decimal', 'integer')
    """
    name, _, parsed_scale = split_raw_type(raw_type)
    if scale is None:
        scale = parsed_scale

    if name == 'number':
        return DECIMAL if scale and scale > 0 else INTEGER

    if overrides and name in overrides:
        return overrides[name]

    if name in RAW_TYPE_MAP:
        return RAW_TYPE_MAP[name]

    return STRING


# Casting - one pure function for both directions

def _cast_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, decimal.Decimal)) and value in {0, 1}:
        return bool(value)
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise TypeConversionError(f'Cannot cast {value!r} to boolean')


def _cast_integer(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            try:
                value = decimal.Decimal(value.strip())
            except decimal.InvalidOperation as err:
                raise TypeConversionError(f'Cannot cast {value!r} to integer') from err
    if isinstance(value, float):
        if not value.is_integer():
            raise TypeConversionError(f'Cannot cast {value!r} to integer without loss')
        return int(value)
    if isinstance(value, decimal.Decimal):
        if not value.is_finite() or value != value.to_integral_value():
            raise TypeConversionError(f'Cannot cast {value!r} to integer without loss')
        return int(value)
    raise TypeConversionError(f'Cannot cast {value!r} to integer')


def _cast_decimal(value: Any) -> decimal.Decimal:
    if isinstance(value, decimal.Decimal):
        return value
    if isinstance(value, bool):
        return decimal.Decimal(int(value))
    if isinstance(value, int):
        return decimal.Decimal(value)
    if isinstance(value, float):
        return decimal.Decimal(str(value))
    if isinstance(value, str):
        try:
            return decimal.Decimal(value.strip())
        except decimal.InvalidOperation as err:
            raise TypeConversionError(f'Cannot cast {value!r} to decimal') from err
    raise TypeConversionError(f'Cannot cast {value!r} to decimal')


def _cast_float(value: Any) -> float:
    if isinstance(value, (int, float, decimal.Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError as err:
            raise TypeConversionError(f'Cannot cast {value!r} to float') from err
    raise TypeConversionError(f'Cannot cast {value!r} to float')


def _parse_temporal(value: str, fmt: str | None) -> datetime.datetime:
    """Parse with the dialect format first, ISO-8601 second."""
    value = value.strip()
    if fmt:
        try:
            return datetime.datetime.strptime(value, fmt)
        except ValueError:
            pass
    try:
        return dateutil.parser.isoparse(value)
    except (ValueError, OverflowError) as err:
        raise TypeConversionError(f'Cannot parse {value!r} as a date/time') from err


def _cast_datetime(value: Any, strategy: 'DatabaseStrategy | None') -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time())
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str):
        return _parse_temporal(value, getattr(strategy, 'datetime_format', None))
    raise TypeConversionError(f'Cannot cast {value!r} to datetime')


def _cast_date(value: Any, strategy: 'DatabaseStrategy | None') -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str):
        return _parse_temporal(value, getattr(strategy, 'date_format', None)).date()
    raise TypeConversionError(f'Cannot cast {value!r} to date')


def _cast_time(value: Any, strategy: 'DatabaseStrategy | None') -> datetime.time:
    if isinstance(value, datetime.datetime):
        return value.time()
    if isinstance(value, datetime.time):
        return value
    if isinstance(value, datetime.timedelta):
        return (datetime.datetime.min + value).time()
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str):
        fmt = getattr(strategy, 'time_format', None)
        if fmt:
            try:
                return datetime.datetime.strptime(value.strip(), fmt).time()
            except ValueError:
                pass
        try:
            return dateutil.parser.isoparser().parse_isotime(value.strip())
        except ValueError as err:
            raise TypeConversionError(f'Cannot parse {value!r} as a time') from err
    raise TypeConversionError(f'Cannot cast {value!r} to time')


def _cast_string(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode()
    return str(value)


def _cast_binary(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode()
    raise TypeConversionError(f'Cannot cast {value!r} to binary')


def cast_value(value: Any, semantic_type: str, strategy: 'DatabaseStrategy | None' = None) -> Any:
    """Cast a value to a semantic type.

    Used both for values read from the driver and for values about to be
    written, so ``cast(cast(x)) == cast(x)``.

    Args:
        value: raw value
        semantic_type: one of SEMANTIC_TYPES
        strategy: dialect strategy supplying date/time format strings

    Returns
        the canonical Python value, or None for None/NaN/NaT

    Raises
        TypeConversionError: if the value cannot be represented
    """
    value = TypeConverter.convert_value(value)
    if value is None:
        return None

    if semantic_type == BOOLEAN:
        return _cast_boolean(value)
    if semantic_type == INTEGER:
        return _cast_integer(value)
    if semantic_type == DECIMAL:
        return _cast_decimal(value)
    if semantic_type == FLOAT:
        return _cast_float(value)
    if semantic_type == DATETIME:
        return _cast_datetime(value, strategy)
    if semantic_type == DATE:
        return _cast_date(value, strategy)
    if semantic_type == TIME:
        return _cast_time(value, strategy)
    if semantic_type == BINARY:
        return _cast_binary(value)
    if semantic_type in {STRING, TEXT}:
        return _cast_string(value)

    raise TypeConversionError(f'Unknown semantic type: {semantic_type}')


# Column - Metadata from introspection descriptors

_QUOTED_DEFAULT = re.compile(r"^'(.*)'(?:::[\w\s]+)?$", re.DOTALL)


def parse_default(raw_default: Any) -> tuple[Any, bool]:
    """Turn a backend column default into a literal.

    Returns the literal and whether the default is a sequence.

    >>> parse_default("'pending'::character varying")
    ('pending', False)
    >>> parse_default("nextval('orders_id_seq'::regclass)")
    (None, True)
    """
    if raw_default is None or not isinstance(raw_default, str):
        return raw_default, False

    text = raw_default.strip()
    if text.lower().startswith('nextval('):
        return None, True
    if text.upper() == 'NULL':
        return None, False

    match = _QUOTED_DEFAULT.match(text)
    if match:
        return match.group(1).replace("''", "'"), False

    if '::' in text:
        text = text.split('::', 1)[0].strip('()')
    return text, False


@dataclass
class Column:
    """Database column metadata."""

    name: str
    inflected_name: str
    type: str
    raw_type: str = ''
    length: int | None = None
    scale: int | None = None
    nullable: bool = True
    pk: bool = False
    auto_increment: bool = False
    default: Any = None
    strategy: 'DatabaseStrategy | None' = field(default=None, repr=False, compare=False)

    @classmethod
    def from_descriptor(cls, desc: dict[str, Any], strategy: 'DatabaseStrategy',
                        inflected_name: str | None = None) -> Self:
        """Create a Column from a ``describe_columns`` descriptor."""
        _, parsed_length, parsed_scale = split_raw_type(desc.get('raw_type'))
        length = desc.get('length') or parsed_length
        scale = desc.get('scale') if desc.get('scale') is not None else parsed_scale
        semantic_type = strategy.map_raw_type(desc.get('raw_type'), scale)

        literal, is_sequence = parse_default(desc.get('default'))
        column = cls(
            name=desc['name'],
            inflected_name=inflected_name or desc['name'].lower(),
            type=semantic_type,
            raw_type=desc.get('raw_type') or '',
            length=length,
            scale=scale,
            nullable=bool(desc.get('nullable', True)),
            pk=bool(desc.get('pk')),
            auto_increment=bool(desc.get('auto_increment')) or is_sequence,
            strategy=strategy,
        )
        try:
            column.default = column.cast(literal)
        except TypeConversionError:
            logger.debug(f'Default {literal!r} of {column.name} is an expression, keeping it uncast')
            column.default = None
        return column

    def cast(self, value: Any, strategy: 'DatabaseStrategy | None' = None) -> Any:
        """Cast value to this column's semantic type."""
        return cast_value(value, self.type, strategy or self.strategy)

    def __repr__(self) -> str:
        return f'Column(name={self.name!r}, type={self.type!r}, pk={self.pk})'

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'inflected_name': self.inflected_name,
            'type': self.type,
            'raw_type': self.raw_type,
            'length': self.length,
            'scale': self.scale,
            'nullable': self.nullable,
            'pk': self.pk,
            'auto_increment': self.auto_increment,
            'default': self.default,
        }


# Row Adapters - Convert database rows to dictionaries

class RowAdapter:
    """Simple row adapter for converting database rows to dictionaries."""

    def __init__(self, row: Any, columns: list[str] | None = None):
        self.row = row
        self.columns = columns

    def to_dict(self) -> dict[str, Any]:
        """Convert row to dictionary."""
        if isinstance(self.row, dict):
            return self.row
        # sqlite3.Row
        if hasattr(self.row, 'keys') and callable(self.row.keys):
            return {key: self.row[key] for key in self.row.keys()}  # noqa: SIM118
        # Namedtuple / SQLAlchemy Row
        if hasattr(self.row, '_asdict'):
            return dict(self.row._asdict())
        if self.columns is not None:
            return dict(zip(self.columns, self.row))
        raise TypeError(f'Cannot convert row of type {type(self.row).__name__} to dict')

    def get_value(self, key: str | None = None) -> Any:
        """Get a value from the row, the first one when no key is given."""
        data = self.to_dict()
        if key is not None:
            return data[key]
        return next(iter(data.values()), None)
