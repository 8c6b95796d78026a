"""
Active record base class.

Examples
    class Order(Model):
        default_order = 'created_at DESC'
        alias_attribute = {'total': 'amount'}
        before_save = ['normalize_state']

        def normalize_state(self):
            self.state = (self.state or 'open').lower()

    order = Order.create({'state': 'OPEN', 'amount': '12.50'})
    Order.find(order.id).total            # Decimal('12.50')
    Order.find_all_by_state('open')
    Order.count_by_state_or_amount('open', 5)
    Order.find('last', {'conditions': ['amount > ?', 10]})
"""
import datetime
import functools
import logging
from collections.abc import Callable, Mapping
from typing import Any

from more_itertools import collapse

from activemodel.builder import reverse_order
from activemodel.conditions import Derived, EqualityMap
from activemodel.dirty import DirtyTracker
from activemodel.exceptions import ActiveModelError, BuilderError, ReadOnlyError
from activemodel.exceptions import RecordNotFound, UndefinedPropertyError
from activemodel.options import VALID_OPTIONS, is_options_hash, validate_find_options
from activemodel.strategy.pagination import ROW_NUMBER_COLUMN
from activemodel.table import ACCESSOR, ALIAS, COLUMN, DELEGATE, Table
from activemodel.transaction import run_in_transaction
from activemodel.types import RowAdapter

__all__ = ['Model']

logger = logging.getLogger(__name__)

_FINDER_PREFIXES = (
    'find_or_create_by_',
    'find_all_by_',
    'find_by_',
    'count_by_',
    )


class ModelMeta(type):
    """Resolves dynamic finders such as ``Order.find_all_by_state``."""

    def __getattr__(cls, name: str) -> Callable[..., Any]:
        if not name.startswith('_'):
            for prefix in _FINDER_PREFIXES:
                if name.startswith(prefix) and len(name) > len(prefix):
                    return functools.partial(cls._dynamic_finder, prefix[:-1], name[len(prefix):])
        raise AttributeError(f'type object {cls.__name__!r} has no attribute {name!r}')


class Model(metaclass=ModelMeta):
    """Base class for models backed by one table.

    Declarations (class attributes):
        table_name: physical table, inferred from the class name when unset
        db: database or schema prefix
        primary_key: attribute name or list of names
        sequence: sequence name, or False to never use one
        connection: configured connection name (or an open ConnectionWrapper)
        default_order: ORDER BY used by finders without an explicit order
        alias_attribute: alias -> attribute name
        attr_accessible: whitelist for mass assignment
        attr_protected: blacklist for mass assignment
        delegate: list of ``{'delegate': [...], 'to': name, 'prefix': str}``
    """
    table_name: str | None = None
    db: str | None = None
    primary_key: str | list[str] | None = None
    sequence: str | bool | None = None
    connection: Any = None
    default_order: str | None = None
    alias_attribute: dict[str, str] = {}
    attr_accessible: list[str] = []
    attr_protected: list[str] = []
    delegate: list[dict[str, Any]] = []

    def __init__(self, attributes: Mapping[str, Any] | None = None, guard_attributes: bool = True,
                 instantiating_via_find: bool = False, new_record: bool = True) -> None:
        self._attributes: dict[str, Any] = {}
        self._dirty = DirtyTracker()
        self._relationships: dict[str, Any] = {}
        self._errors: list[str] = []
        self._readonly = False
        self._new_record = new_record

        if not instantiating_via_find:
            for column in self.table().columns.values():
                self._attributes[column.inflected_name] = column.default

        self._set_attributes_via_mass_assignment(attributes or {}, guard_attributes)

        # hydrated rows went through assign_attribute but nothing is dirty yet
        if instantiating_via_find:
            self._dirty.clear()

        self._invoke_callback('after_construct')

    def __repr__(self) -> str:
        return f'<{type(self).__name__} {self._attributes!r}>'

    # Attribute access

    def __getattr__(self, name: str) -> Any:
        if name.startswith('_'):
            raise AttributeError(name)
        return self.read_attribute(name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith('_'):
            object.__setattr__(self, name, value)
            return

        kind, target = self.table().access.get(name, (None, None))
        if kind == ACCESSOR:
            object.__setattr__(self, name, value)
        elif kind == ALIAS:
            self.assign_attribute(target, value)
        elif kind == COLUMN or name in self._attributes:
            self.assign_attribute(name, value)
        elif name == 'id':
            self.assign_attribute(self.get_primary_key(first=True), value)
        elif kind == DELEGATE:
            owner, attribute = target.split('.', 1)
            setattr(getattr(self, owner), attribute, value)
        else:
            raise UndefinedPropertyError(type(self).__name__, name)

    def __copy__(self) -> 'Model':
        clone = type(self).__new__(type(self))
        clone.__dict__.update(self.__dict__)
        clone._attributes = dict(self._attributes)
        clone._relationships = {}
        clone._errors = []
        clone._dirty = DirtyTracker()
        return clone

    def __getstate__(self) -> dict[str, Any]:
        return self.__dict__

    def __setstate__(self, state: dict[str, Any]) -> None:
        self.__dict__.update(state)
        type(self).table()

    def assign_attribute(self, name: str, value: Any) -> Any:
        """Cast value through the attribute's column (if any), store it and flag it."""
        table = self.table()
        column = table.columns.get(name) or table.get_column_by_inflected_name(name)
        if column is not None:
            value = column.cast(value)
        self._attributes[name] = value
        self.flag_dirty(name)
        return value

    def read_attribute(self, name: str) -> Any:
        """Value of an attribute, alias, relationship or delegated attribute.

        Raises
            UndefinedPropertyError: if the name resolves to nothing
        """
        table = self.table()
        kind, target = table.access.get(name, (None, None))
        if kind == ALIAS:
            name = target

        if name in self._attributes:
            return self._attributes[name]

        if name in self._relationships:
            return self._relationships[name]
        relationship = table.get_relationship(name)
        if relationship is not None:
            self._relationships[name] = relationship.load(self)
            return self._relationships[name]

        if name == 'id':
            pk = self.get_primary_key(first=True)
            if pk in self._attributes:
                return self._attributes[pk]

        if kind == DELEGATE:
            owner, attribute = target.split('.', 1)
            owner_model = getattr(self, owner)
            return None if owner_model is None else getattr(owner_model, attribute)

        raise UndefinedPropertyError(type(self).__name__, name)

    def has_attribute(self, name: str) -> bool:
        if name in self._attributes:
            return True
        return self.table().access.get(name, (None, None))[0] == ACCESSOR

    def flag_dirty(self, name: str, dirty: bool = True) -> None:
        if dirty:
            self._dirty.flag(name)
        else:
            self._dirty.unflag(name)

    def dirty_attributes(self) -> dict[str, Any]:
        """Flagged attributes with their current values."""
        return self._dirty.diff(self._attributes)

    def attribute_is_dirty(self, name: str) -> bool:
        return name in self._dirty and name in self._attributes

    def attributes(self) -> dict[str, Any]:
        return dict(self._attributes)

    def get_primary_key(self, first: bool = False) -> list[str] | str:
        pk = self.table().pk
        return pk[0] if first else list(pk)

    def get_real_attribute_name(self, name: str) -> str | None:
        if name in self._attributes:
            return name
        kind, target = self.table().access.get(name, (None, None))
        if kind == ALIAS:
            return target
        return None

    def values_for(self, names: list[str]) -> dict[str, Any]:
        return {name: self._attributes[name] if name in self._attributes else getattr(self, name)
                for name in names}

    def values_for_pk(self) -> dict[str, Any]:
        return self.values_for(self.get_primary_key())

    def _set_attributes_via_mass_assignment(self, attributes: Mapping[str, Any],
                                            guard_attributes: bool) -> None:
        table = self.table()
        accessible = set(self.attr_accessible or ())
        protected = set(self.attr_protected or ())
        undefined = []

        for name, value in attributes.items():
            column = table.get_column(name)
            if column is not None:
                value = column.cast(value)
                name = column.inflected_name

            if guard_attributes:
                if accessible and name not in accessible:
                    continue
                if name in protected:
                    continue
                try:
                    setattr(self, name, value)
                except UndefinedPropertyError:
                    undefined.append(name)
            else:
                if name.lower() == ROW_NUMBER_COLUMN:
                    continue
                self.assign_attribute(name, value)

        if undefined:
            raise UndefinedPropertyError(type(self).__name__, undefined)

    def set_attributes(self, attributes: Mapping[str, Any]) -> None:
        """Mass-assign attributes, honoring attr_accessible/attr_protected."""
        self._set_attributes_via_mass_assignment(attributes, True)

    # State

    def is_readonly(self) -> bool:
        return self._readonly

    def readonly(self, readonly: bool = True) -> None:
        self._readonly = readonly

    def is_new_record(self) -> bool:
        return self._new_record

    def is_dirty(self) -> bool:
        return bool(self._dirty)

    def reset_dirty(self) -> None:
        self._dirty.clear()

    def _verify_not_readonly(self, method_name: str) -> None:
        if self._readonly:
            raise ReadOnlyError(type(self).__name__, method_name)

    def _invoke_callback(self, event: str, must_exist: bool = False) -> bool:
        return self.table().callback.invoke(self, event, must_exist)

    # Validation

    @property
    def errors(self) -> list[str]:
        """Messages added by ``validate`` during the last validation run."""
        return self._errors

    def validate(self) -> None:
        """Override to check the record; append messages to ``self.errors``."""

    def _validate(self) -> bool:
        self._errors = []
        suffix = '_on_create' if self._new_record else '_on_update'
        for event in ('before_validation', f'before_validation{suffix}'):
            if not self._invoke_callback(event):
                return False

        self.validate()
        if self._errors:
            logger.debug(f'{type(self).__name__} failed validation: {self._errors}')
            return False

        for event in ('after_validation', f'after_validation{suffix}'):
            self._invoke_callback(event)
        return True

    def is_valid(self) -> bool:
        return self._validate()

    def is_invalid(self) -> bool:
        return not self._validate()

    # Persistence

    def _column_data(self, data: Mapping[str, Any]) -> dict[str, Any]:
        table = self.table()
        return {k: v for k, v in data.items()
                if table.get_column_by_inflected_name(k) is not None or k in table.columns}

    def save(self, validate: bool = True) -> bool:
        """INSERT a new record or UPDATE the dirty attributes of an existing one.

        Returns
            False when validation fails or a before hook aborts, otherwise True
        """
        self._verify_not_readonly('save')
        return self._insert(validate) if self._new_record else self._update(validate)

    def _insert(self, validate: bool = True) -> bool:
        self._verify_not_readonly('insert')
        if validate and not self._validate():
            return False
        if not self._invoke_callback('before_create'):
            return False

        table = self.table()
        attributes = self._column_data(self.dirty_attributes() or self._attributes)
        pk = self.get_primary_key(first=True)
        pk_supplied = attributes.get(pk) is not None
        use_sequence = False

        if table.sequence and not pk_supplied:
            attributes.pop(pk, None)
            table.insert(attributes, pk, table.sequence)
            use_sequence = True
        else:
            table.insert(attributes)

        column = table.get_column_by_inflected_name(pk)
        if not pk_supplied and (use_sequence or (column is not None and column.auto_increment)):
            new_id = table.conn.insert_id(table.sequence)
            self._attributes[pk] = column.cast(new_id) if column is not None else new_id

        self._new_record = False
        self._dirty.clear()
        self._invoke_callback('after_create')
        return True

    def _update(self, validate: bool = True) -> bool:
        self._verify_not_readonly('update')
        if validate and not self._validate():
            return False

        if not self.is_dirty():
            return True

        pk = self.values_for_pk()
        if not pk or any(v is None for v in pk.values()):
            raise ActiveModelError(f'Cannot update, no primary key defined for: {type(self).__name__}')
        if not self._invoke_callback('before_update'):
            return False

        dirty = self._column_data(self.dirty_attributes())
        if dirty:
            self.table().update(dirty, pk)
        self._dirty.clear()
        self._invoke_callback('after_update')
        return True

    def delete(self) -> bool:
        """DELETE this record by primary key."""
        self._verify_not_readonly('delete')
        pk = self.values_for_pk()
        if not pk or any(v is None for v in pk.values()):
            raise ActiveModelError(f'Cannot delete, no primary key defined for: {type(self).__name__}')
        if not self._invoke_callback('before_destroy'):
            return False
        self.table().delete(pk)
        self._invoke_callback('after_destroy')
        return True

    def update_attributes(self, attributes: Mapping[str, Any]) -> bool:
        self.set_attributes(attributes)
        return self.save()

    def update_attribute(self, name: str, value: Any) -> bool:
        """Set one attribute and UPDATE without validation."""
        setattr(self, name, value)
        return self._update(False)

    def set_timestamps(self) -> None:
        """Stamp ``updated_at`` (and ``created_at`` on new records) when present."""
        now = datetime.datetime.now().replace(microsecond=0)
        if 'updated_at' in self._attributes:
            self.updated_at = now
        if 'created_at' in self._attributes and self._new_record:
            self.created_at = now

    def reload(self) -> 'Model':
        """Re-read the record from the database, discarding unsaved changes."""
        self._relationships = {}
        pk = [self._attributes[name] for name in self.get_primary_key() if name in self._attributes]
        fresh = type(self).find_by_pk(pk[0] if len(pk) == 1 else pk)
        self._set_attributes_via_mass_assignment(fresh.attributes(), False)
        self.reset_dirty()
        return self

    # Class level

    @classmethod
    def table(cls) -> Table:
        return Table.load(cls)

    @classmethod
    def table_name_for(cls) -> str:
        return cls.table().table

    @classmethod
    def connection_for(cls):
        return cls.table().conn

    @classmethod
    def reestablish_connection(cls):
        return cls.table().reestablish_connection()

    @classmethod
    def create(cls, attributes: Mapping[str, Any], validate: bool = True,
               guard_attributes: bool = True) -> 'Model':
        model = cls(attributes, guard_attributes)
        model.save(validate)
        return model

    @classmethod
    def _extract_and_validate_options(cls, args: list, default_order: bool = True) -> dict[str, Any]:
        """Pop a trailing options mapping off args.

        A trailing mapping whose keys are all options is the options. A mapping
        without any option keys is taken as conditions. Mixing option keys with
        unknown keys raises UnknownOptionError.
        """
        options: dict[str, Any] = {}
        if args and isinstance(args[-1], Mapping):
            last = args.pop()
            if any(key in VALID_OPTIONS for key in last):
                is_options_hash(last)
                options = dict(last)
            elif last:
                options = {'conditions': dict(last)}

        if default_order and 'order' not in options:
            if cls.default_order:
                options['order'] = cls.default_order
            else:
                table = cls.table()
                names = table.name_map()
                options['order'] = ', '.join(
                    f'{table.strategy.quote_identifier(names.get(pk, pk))} ASC' for pk in table.pk)
        return options

    @classmethod
    def pk_conditions(cls, values: Any) -> EqualityMap:
        return EqualityMap({cls.table().pk[0]: values})

    @classmethod
    def find(cls, *args: Any) -> Any:
        """Find records.

        ``find(5)`` / ``find(1, 2)`` look up by primary key, ``find('first')``,
        ``find('last')`` and ``find('all')`` run the trailing options mapping.

        Raises
            RecordNotFound: no arguments, or a primary key lookup came up short
        """
        if not args:
            raise RecordNotFound(f"Couldn't find {cls.__name__} without an ID")

        args = list(args)
        options = cls._extract_and_validate_options(args)
        single = True

        if args and isinstance(args[0], str) and args[0] in {'all', 'first', 'last'}:
            kind = args.pop(0)
            if kind == 'all':
                single = False
            else:
                if kind == 'last':
                    options['order'] = reverse_order(options['order'])
                options['limit'] = 1
                options['offset'] = 0

        if args:
            return cls.find_by_pk(args[0] if len(args) == 1 else args, options)

        found = cls.table().find(options)
        if single:
            return found[0] if found else None
        return found

    @classmethod
    def all(cls, *args: Any) -> list['Model']:
        return cls.find('all', *args)

    @classmethod
    def first(cls, *args: Any) -> 'Model | None':
        return cls.find('first', *args)

    @classmethod
    def last(cls, *args: Any) -> 'Model | None':
        return cls.find('last', *args)

    @classmethod
    def find_by_pk(cls, values: Any, options: Mapping[str, Any] | None = None) -> Any:
        """Look up one or more records by primary key.

        Returns a single model when one key is requested, else a list.

        Raises
            RecordNotFound: when the number of rows differs from the number of keys
        """
        options = validate_find_options(options)
        keys = list(collapse([values]))
        condition = cls.pk_conditions(keys[0] if len(keys) == 1 else keys)

        found = cls.table().find(options, [condition])
        expected = len(keys)
        if len(found) != expected:
            ids = ','.join(str(k) for k in keys)
            if expected == 1:
                raise RecordNotFound(f"Couldn't find {cls.__name__} with ID={ids}")
            raise RecordNotFound(f"Couldn't find all {cls.__name__} with IDs ({ids}) "
                                 f'(found {len(found)}, but was looking for {expected})')
        return found[0] if expected == 1 else found

    @classmethod
    def find_by_sql(cls, sql: str, values: Any = None) -> list['Model']:
        """Hydrate models from hand-written SQL; they come back readonly."""
        values = () if values is None else values
        if not isinstance(values, (list, tuple)):
            values = (values,)
        return cls.table().find_by_sql(sql, values, readonly=True)

    @classmethod
    def query(cls, sql: str, values: Any = None):
        """Run SQL on the model's connection and return the cursor."""
        values = () if values is None else values
        if not isinstance(values, (list, tuple)):
            values = (values,)
        return cls.connection_for().query(sql, tuple(values))

    @classmethod
    def count(cls, *args: Any) -> int:
        """COUNT(*) of matching rows.

        ``count({'state': 'open'})`` counts by conditions, ``count(5)`` or
        ``count([1, 2])`` by primary key, ``count({'conditions': ...})`` by options.
        """
        args = list(args)
        options = cls._extract_and_validate_options(args, default_order=False)
        options.pop('order', None)
        options['select'] = 'COUNT(*)'
        extra = []
        if args and args[0] is not None and args[0] != '' and args[0] != []:
            if isinstance(args[0], Mapping):
                extra.append(args[0])
            else:
                extra.append(cls.pk_conditions(args[0]))

        sql, values = cls.table().options_to_sql(options, extra).build()
        cursor = cls.connection_for().query(sql, tuple(values), process=False)
        try:
            row = cursor.fetchone()
        finally:
            cursor.close()
        return int(RowAdapter(row).get_value()) if row else 0

    @classmethod
    def exists(cls, *args: Any) -> bool:
        return cls.count(*args) > 0

    @classmethod
    def delete_all(cls, options: Mapping[str, Any] | None = None) -> int:
        """DELETE rows without instantiating models (no callbacks run).

        Args:
            options: conditions, plus limit/order on dialects that allow it

        Returns
            affected row count
        """
        options = validate_find_options(options)
        table = cls.table()
        builder = table.builder()
        conditions = options.get('conditions')
        if conditions is not None and conditions != '':
            builder.delete(conditions)
        else:
            builder.delete()
        builder.limit(options.get('limit')).order(options.get('order'))
        return table.execute(builder)

    @classmethod
    def update_all(cls, options: Mapping[str, Any]) -> int:
        """UPDATE rows with ``options['set']`` without instantiating models.

        Returns
            affected row count
        """
        options = validate_find_options(options)
        if not options.get('set'):
            raise BuilderError('update_all requires a "set" option')
        table = cls.table()
        builder = table.builder().update(options['set'])
        conditions = options.get('conditions')
        if conditions is not None and conditions != '':
            builder.where(conditions)
        builder.limit(options.get('limit')).order(options.get('order'))
        return table.execute(builder)

    @classmethod
    def transaction(cls, fn: Callable[[], Any]) -> bool:
        """Run fn in a transaction on the model's connection.

        Returns
            True if committed, False if fn returned False and was rolled back
        """
        return run_in_transaction(cls.connection_for(), fn) is not False

    @classmethod
    def _dynamic_finder(cls, kind: str, expr: str, *args: Any) -> Any:
        args = list(args)
        options = cls._extract_and_validate_options(args)

        if kind == 'find_or_create_by' and '_or_' in expr:
            raise BuilderError("Cannot use OR'd attributes in find_or_create_by")

        condition = Derived.from_string(expr, args)
        options['conditions'] = condition

        if kind == 'count_by':
            return cls.count(options)
        if kind == 'find_all_by':
            return cls.find('all', options)

        found = cls.find('first', options)
        if found is None and kind == 'find_or_create_by':
            return cls.create(condition.to_mapping())
        return found
