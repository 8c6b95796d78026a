"""
Per-model table metadata, built once per class and cached for the process.

``Table.load(Order)`` resolves the table name, introspects the columns,
resolves the primary key and sequence, builds the attribute access table
and registers lifecycle hooks. Later calls return the same instance.
"""
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from activemodel.builder import SQLBuilder
from activemodel.cache import Cache
from activemodel.callbacks import CallBack
from activemodel.config import ConnectionManager
from activemodel.connection import ConnectionWrapper
from activemodel.exceptions import ConfigurationError
from activemodel.inflector import tableize, variablize
from activemodel.strategy.pagination import ROW_NUMBER_COLUMN
from activemodel.types import Column

__all__ = ['Table', 'TABLE_REGISTRY']

logger = logging.getLogger(__name__)

TABLE_REGISTRY = 'tables'

# attribute access kinds
COLUMN = 'column'
ACCESSOR = 'accessor'
ALIAS = 'alias'
DELEGATE = 'delegate'


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def _shadowing_owner(model_class: type, name: str) -> type | None:
    """Class whose member hides column ``name`` from instance attribute lookup.

    Properties defined on a model subclass are accessors that wrap the column
    on purpose and do not count; members of the base classes always do.
    """
    for klass in model_class.__mro__:
        if klass is object or name not in vars(klass):
            continue
        member = vars(klass)[name]
        if isinstance(member, property) and not klass.__module__.startswith('activemodel.'):
            return None
        return klass
    return None


class Table:
    """Metadata and statement helpers for one model class.

    Attributes
        model_class: the model class
        conn: ConnectionWrapper used for this table
        table: physical table name
        db_name: optional database/schema name
        columns: raw column name -> Column, in table order
        pk: primary key attribute names
        sequence: sequence name on dialects that use sequences
        access: attribute name -> ('column' | 'accessor' | 'alias' | 'delegate', target)
        callback: CallBack registry
        relationships: relationship name -> relationship object
    """

    def __init__(self, model_class: type) -> None:
        self.model_class = model_class
        self.connection_name = getattr(model_class, 'connection', None)
        self.conn = self._open_connection()
        self.db_name = getattr(model_class, 'db', None)
        self.table = getattr(model_class, 'table_name', None) or tableize(model_class.__name__)
        self.last_sql: str | None = None

        self.columns: dict[str, Column] = {}
        self._inflected: dict[str, Column] = {}
        self.get_meta_data()

        self.pk = self._resolve_primary_key()
        self.sequence = self._resolve_sequence()
        self.access = self._build_access_table()
        self.callback = CallBack(model_class)
        self.relationships: dict[str, Any] = {}

        logger.debug(f'Loaded table {self.fully_qualified_name(quote=False)} for '
                     f'{model_class.__name__}: pk={self.pk} columns={list(self.columns)}')

    def __repr__(self) -> str:
        return f'<Table {self.fully_qualified_name(quote=False)} ({self.model_class.__name__})>'

    @classmethod
    def load(cls, model_class: type) -> 'Table':
        """Return the Table for model_class, building it on first access."""
        return Cache.get_instance().get_or_build(TABLE_REGISTRY, model_class,
                                                 lambda: cls(model_class))

    @classmethod
    def clear_cache(cls, model_class: type | None = None) -> None:
        """Drop one cached Table, or all of them."""
        registry = Cache.get_instance().get_registry(TABLE_REGISTRY)
        if model_class is None:
            registry.clear()
        else:
            registry.pop(model_class, None)

    # Connection

    def _open_connection(self) -> ConnectionWrapper:
        declared = self.connection_name
        if declared is not None and not isinstance(declared, str):
            return declared
        return ConnectionManager.get_instance().get_connection(declared)

    @property
    def strategy(self):
        return self.conn.strategy

    def reestablish_connection(self, close: bool = True) -> ConnectionWrapper:
        """Swap in a fresh connection, keeping the column metadata."""
        if isinstance(self.connection_name, str) or self.connection_name is None:
            if close:
                ConnectionManager.get_instance().drop_connection(self.connection_name)
            self.conn = ConnectionManager.get_instance().get_connection(self.connection_name)
        return self.conn

    # Metadata

    def get_meta_data(self) -> None:
        """Introspect the columns; the driver's error propagates for a missing table."""
        strategy = self.strategy
        for desc in strategy.describe_columns(self.conn, self.fully_qualified_name(quote=False)):
            column = Column.from_descriptor(desc, strategy, variablize(desc['name']))
            self.columns[column.name] = column
            self._inflected[column.inflected_name] = column

    def _resolve_primary_key(self) -> list[str]:
        declared = _as_list(getattr(self.model_class, 'primary_key', None))
        if declared:
            return declared
        backend = [c.inflected_name for c in self.columns.values() if c.pk]
        return backend or ['id']

    def _resolve_sequence(self) -> str | None:
        declared = getattr(self.model_class, 'sequence', None)
        if not self.strategy.uses_sequences or declared is False:
            return None
        return declared or self.strategy.default_sequence_name(self.table, self.pk[0])

    def _build_access_table(self) -> dict[str, tuple[str, str]]:
        access: dict[str, tuple[str, str]] = {}
        aliases = getattr(self.model_class, 'alias_attribute', None) or {}
        aliased = set(aliases.values())
        for name in self._inflected:
            owner = _shadowing_owner(self.model_class, name)
            if owner is not None and name not in aliased:
                raise ConfigurationError(
                    f'Column {self.table}.{name} is hidden by {owner.__name__}.{name}; '
                    f'declare an alias_attribute for {name!r} to read it under another name')
            access[name] = (COLUMN, name)

        for name in dir(self.model_class):
            if isinstance(getattr(self.model_class, name, None), property):
                access[name] = (ACCESSOR, name)

        for alias, target in aliases.items():
            if target not in self._inflected:
                raise ConfigurationError(
                    f'{self.model_class.__name__}.{alias} aliases unknown attribute {target!r}')
            access[alias] = (ALIAS, target)

        for item in getattr(self.model_class, 'delegate', None) or []:
            if 'to' not in item:
                raise ConfigurationError(f'Delegate declaration needs a "to" target: {item!r}')
            prefix = item.get('prefix')
            for name in _as_list(item.get('delegate')):
                exposed = f'{prefix}_{name}' if prefix else name
                access[exposed] = (DELEGATE, f'{item["to"]}.{name}')
        return access

    def get_column_by_inflected_name(self, name: str) -> Column | None:
        return self._inflected.get(name)

    def get_column(self, name: str) -> Column | None:
        """Column for a raw result key, matching case-insensitively."""
        return self.columns.get(name) or self.columns.get(name.lower())

    def primary_key(self) -> list[str]:
        return list(self.pk)

    def fully_qualified_name(self, quote: bool = True) -> str:
        name = f'{self.db_name}.{self.table}' if self.db_name else self.table
        return self.strategy.quote_identifier(name) if quote else name

    def name_map(self) -> dict[str, str]:
        """Attribute and alias names -> raw column names."""
        mapping = {column.inflected_name: column.name for column in self.columns.values()}
        for name, (kind, target) in self.access.items():
            if kind == ALIAS:
                mapping[name] = self._inflected[target].name
        return mapping

    # Relationships

    def add_relationship(self, name: str, relationship: Any) -> None:
        self.relationships[name] = relationship

    def get_relationship(self, name: str) -> Any | None:
        return self.relationships.get(name)

    def _load_includes(self, models: list, includes: Any) -> None:
        for name in _as_list(includes):
            relationship = self.get_relationship(name)
            if relationship is None:
                raise ConfigurationError(
                    f'Relationship named {name} has not been declared for class: '
                    f'{self.model_class.__name__}')
            relationship.load_eagerly(models, self)

    # Statements

    def builder(self) -> SQLBuilder:
        return SQLBuilder(self.strategy, self.fully_qualified_name(quote=False), self.name_map())

    def options_to_sql(self, options: Mapping[str, Any],
                       extra_conditions: Sequence[Any] = ()) -> SQLBuilder:
        """Builder for a SELECT described by a finder options mapping."""
        builder = self.builder()
        builder.from_(options.get('from'))
        builder.joins(options.get('joins'))
        builder.select(options.get('select'))
        conditions = options.get('conditions')
        if conditions is not None and conditions != '':
            builder.where(conditions)
        for condition in extra_conditions:
            builder.where(condition)
        builder.group(options.get('group'))
        builder.having(options.get('having'))
        builder.order(options.get('order'))
        builder.limit(options.get('limit'))
        builder.offset(options.get('offset'))
        return builder

    def find(self, options: Mapping[str, Any], extra_conditions: Sequence[Any] = ()) -> list:
        """Run a finder options mapping and hydrate the rows."""
        sql, values = self.options_to_sql(options, extra_conditions).build()
        readonly = bool(options.get('readonly'))
        return self.find_by_sql(sql, values, readonly=readonly, includes=options.get('include'),
                                process=False)

    def find_by_sql(self, sql: str, values: Sequence[Any] = (), readonly: bool = False,
                    includes: Any = None, process: bool = True) -> list:
        """Run SQL and build a model per row.

        The row number pseudo-column added by wrapping pagination is dropped.
        """
        self.last_sql = sql
        cursor = self.conn.query(sql, tuple(values), process=process)
        try:
            rows = cursor.fetchall()
        finally:
            cursor.close()

        models = []
        for row in rows:
            attributes = {k: v for k, v in row.items() if k.lower() != ROW_NUMBER_COLUMN}
            model = self.model_class(attributes, guard_attributes=False,
                                     instantiating_via_find=True, new_record=False)
            if readonly:
                model.readonly()
            models.append(model)

        if includes and models:
            self._load_includes(models, includes)
        return models

    def execute(self, builder: SQLBuilder) -> int:
        sql, values = builder.build()
        self.last_sql = sql
        cursor = self.conn.query(sql, tuple(values), process=False)
        try:
            return cursor.rowcount
        finally:
            cursor.close()

    def insert(self, data: Mapping[str, Any], pk: str | None = None,
               sequence: str | None = None) -> int:
        return self.execute(self.builder().insert(data, pk, sequence))

    def update(self, data: Mapping[str, Any] | str, where: Mapping[str, Any]) -> int:
        return self.execute(self.builder().update(data).where(where))

    def delete(self, where: Mapping[str, Any]) -> int:
        return self.execute(self.builder().delete(where))
