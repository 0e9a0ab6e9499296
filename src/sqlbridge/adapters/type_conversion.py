"""
Type conversion between application values and SQL representations.

This module handles both directions of value conversion:
1. Application value -> SQL (``convert_to``), keyed by the value's exact type
2. Column data -> application value (``convert_from``), keyed by the column's
   native type tag

It provides:
1. The ``TypeConverter`` interface with probe (``can_convert_*``) and
   transform (``convert_*``) operations
2. ``TableTypeConverter``, driven by conversion tables registered explicitly
   or loaded from the connection's ``type_converter`` configuration
3. ``DisabledTypeConverter``, which declines everything
4. Conversion rules (``Constructor``, ``Function``, ``Method``) decided at
   registration time

Probes never raise; a missing rule is a normal ``False``. The transforms
raise ``NotSupported`` when called without a matching rule.

Usage:
    converter = TableTypeConverter(
        from_rules={'point': Point},
        to_rules={Point: 'to_sql'},
    )
    cn = Connection(options, converter=converter)

    # Configuration shape accepted through DatabaseOptions.type_converter
    {
        'from': {'point': 'geometry.types:Point'},
        'to': {'geometry.types:Point': 'to_sql',
               'decimal:Decimal': ('geometry.codecs', 'decimal_literal')},
    }
"""
import importlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import numpy as np

from sqlbridge.adapters.column_info import ColumnInfo
from sqlbridge.exceptions import InvalidArgument, InvalidState, NotSupported

if TYPE_CHECKING:
    from sqlbridge.connection import Connection

__all__ = [
    'ConversionContext',
    'Rule',
    'Constructor',
    'Function',
    'Method',
    'TypeConverter',
    'TableTypeConverter',
    'DisabledTypeConverter',
    'get_type_converter',
    'get_available_converters',
    'import_reference',
    'is_scalar',
]

logger = logging.getLogger(__name__)

# Values of these types are rendered natively and never handed to a rule
SCALAR_TYPES: tuple[type, ...] = (
    type(None), bool, int, float, complex, str, bytes, bytearray, np.generic,
)

_FROM = 'from'
_TO = 'to'


def is_scalar(value: Any) -> bool:
    """Check if a value is a native scalar that conversion must not touch."""
    return isinstance(value, SCALAR_TYPES)


class ConversionContext:
    """Modifier a value is rendered with; rules may rewrite it in place.
    """

    __slots__ = ('modifier',)

    def __init__(self, modifier: Any = None) -> None:
        self.modifier = modifier

    def __repr__(self) -> str:
        return f'ConversionContext(modifier={self.modifier!r})'


def _as_context(context: Any) -> ConversionContext:
    if isinstance(context, ConversionContext):
        return context
    return ConversionContext(context)


class Rule(ABC):
    """A single conversion rule."""

    @abstractmethod
    def apply(self, value: Any, context: Any) -> Any:
        """Run the rule against a value."""


@dataclass(frozen=True)
class Constructor(Rule):
    """Instantiate ``cls`` with the value."""

    cls: type

    def __post_init__(self) -> None:
        if not isinstance(self.cls, type):
            raise InvalidArgument(f'Constructor rule needs a class, got {self.cls!r}')

    def apply(self, value: Any, context: Any) -> Any:
        return self.cls(value)


@dataclass(frozen=True)
class Function(Rule):
    """Call ``func(value, context)``."""

    func: Callable[[Any, Any], Any]

    def __post_init__(self) -> None:
        if not callable(self.func):
            raise InvalidArgument(f'Function rule needs a callable, got {self.func!r}')

    def apply(self, value: Any, context: Any) -> Any:
        return self.func(value, context)


@dataclass(frozen=True)
class Method(Rule):
    """Call the named method on the value itself, without arguments."""

    name: str

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.isidentifier():
            raise InvalidArgument(f'Method rule needs a method name, got {self.name!r}')

    def apply(self, value: Any, context: Any) -> Any:
        return getattr(value, self.name)()


def import_reference(reference: str) -> Any:
    """Resolve ``'package.module:attr'`` or ``'package.module.attr'``.

    Raises InvalidArgument when the module or attribute does not exist.
    """
    if ':' in reference:
        module_name, _, attr_path = reference.partition(':')
    else:
        module_name, _, attr_path = reference.rpartition('.')
    if not module_name or not attr_path:
        raise InvalidArgument(f'Invalid import reference: {reference!r}')

    try:
        obj = importlib.import_module(module_name)
    except ImportError as e:
        raise InvalidArgument(f'Cannot import {module_name!r} for {reference!r}: {e}') from e

    for attr in attr_path.split('.'):
        try:
            obj = getattr(obj, attr)
        except AttributeError as e:
            raise InvalidArgument(f'{reference!r} does not exist') from e
    return obj


def _resolve_target(target: Any) -> Any:
    """Resolve the target half of a multi-part reference."""
    if not isinstance(target, str):
        return target
    try:
        return importlib.import_module(target)
    except ImportError:
        return import_reference(target)


def _callable_rule(target: Any) -> Rule:
    if isinstance(target, type):
        return Constructor(target)
    if callable(target):
        return Function(target)
    raise InvalidArgument(f'Conversion target is not callable: {target!r}')


def _multi_part_rule(reference: Any) -> Rule:
    if isinstance(reference, Mapping):
        try:
            target, member = reference['target'], reference['member']
        except KeyError as e:
            raise InvalidArgument(f'Multi-part rule needs target and member: {reference!r}') from e
    else:
        target, member = reference

    owner = _resolve_target(target)
    try:
        func = getattr(owner, member)
    except (AttributeError, TypeError) as e:
        raise InvalidArgument(f'{target!r} has no member {member!r}') from e
    if not callable(func):
        raise InvalidArgument(f'{target!r}.{member} is not callable')
    return Function(func)


def rule_from_config(entry: Any, direction: str) -> Rule:
    """Build a rule from a configuration entry.

    A bare string is a method name in the to-SQL direction and an import
    reference in the from-SQL direction. A one-element sequence is always an
    import reference; a pair or a ``{'target', 'member'}`` mapping is a
    multi-part reference to a function.
    """
    if isinstance(entry, Rule):
        if direction == _FROM and isinstance(entry, Method):
            raise InvalidArgument('Method rules only apply to application values')
        return entry

    if isinstance(entry, str):
        if direction == _TO:
            return Method(entry)
        return _callable_rule(import_reference(entry))

    if isinstance(entry, Mapping):
        return _multi_part_rule(entry)

    if isinstance(entry, list | tuple):
        if len(entry) == 1:
            (single,) = entry
            if isinstance(single, str):
                single = import_reference(single)
            return _callable_rule(single)
        if len(entry) == 2:
            return _multi_part_rule(entry)
        raise InvalidArgument(f'Cannot interpret conversion rule {entry!r}')

    return _callable_rule(entry)


def _native_type_key(native_type: Any) -> str:
    if not isinstance(native_type, str) or not native_type:
        raise InvalidArgument(f'Native type tag must be a non-empty string, got {native_type!r}')
    return native_type


def _value_type_key(type_: Any) -> type:
    if isinstance(type_, str):
        type_ = import_reference(type_)
    if not isinstance(type_, type):
        raise InvalidArgument(f'Conversion key must be a class, got {type_!r}')
    return type_


class TypeConverter(ABC):
    """Bidirectional value converter injected into exactly one connection.
    """

    def __init__(self) -> None:
        self._connection: 'Connection | None' = None

    @property
    def connection(self) -> 'Connection | None':
        return self._connection

    @property
    def is_injected(self) -> bool:
        return self._connection is not None

    def inject_connection(self, connection: 'Connection') -> None:
        """Wire the converter to its connection. Allowed exactly once.

        Raises
            InvalidState: when a connection was already injected
            InvalidArgument: when the connection is empty
        """
        if self._connection is not None:
            raise InvalidState('Connection already injected.')

        if not connection:
            raise InvalidArgument('Connection cannot be empty.')

        self._load(connection)
        self._connection = connection

    def _load(self, connection: 'Connection') -> None:
        """Read connection-scoped configuration at injection time."""

    @abstractmethod
    def can_convert_from(self, raw: Any, column: ColumnInfo) -> bool:
        """Tell whether a value read from ``column`` can be reconstructed.
        """

    @abstractmethod
    def can_convert_to(self, value: Any, context: Any = None) -> bool:
        """Tell whether an application value has a SQL conversion.
        """

    @abstractmethod
    def convert_from(self, raw: Any, column: ColumnInfo) -> Any:
        """Reconstruct the application value of a column value.

        Raises NotSupported when no rule exists.
        """

    @abstractmethod
    def convert_to(self, value: Any, context: Any = None) -> Any:
        """Convert an application value to its SQL-ready representation.

        ``context`` may be a :class:`ConversionContext`; rules can rewrite its
        ``modifier`` to make the caller render the result differently.

        Raises NotSupported when no rule exists.
        """


class TableTypeConverter(TypeConverter):
    """Converter driven by to-SQL and from-SQL conversion tables.

    Rules are registered before injection (explicitly or through the
    connection configuration) and the tables are frozen afterwards.
    """

    def __init__(self, from_rules: Mapping[str, Any] | None = None,
                 to_rules: Mapping[Any, Any] | None = None) -> None:
        super().__init__()
        self._from_rules: dict[str, Rule] = {}
        self._to_rules: dict[type, Rule] = {}
        for native_type, rule in (from_rules or {}).items():
            self.register_from(native_type, rule)
        for type_, rule in (to_rules or {}).items():
            self.register_to(type_, rule)

    @property
    def from_rules(self) -> Mapping[str, Rule]:
        return MappingProxyType(self._from_rules)

    @property
    def to_rules(self) -> Mapping[type, Rule]:
        return MappingProxyType(self._to_rules)

    def _ensure_mutable(self) -> None:
        if self.is_injected:
            raise InvalidState('Conversion tables are read-only once a connection is injected.')

    def register_from(self, native_type: str, rule: Any) -> None:
        """Register the rule reconstructing values of a native column type."""
        self._ensure_mutable()
        self._from_rules[_native_type_key(native_type)] = rule_from_config(rule, _FROM)

    def register_to(self, type_: type | str, rule: Any) -> None:
        """Register the rule converting instances of ``type_`` for SQL."""
        self._ensure_mutable()
        self._to_rules[_value_type_key(type_)] = rule_from_config(rule, _TO)

    def _load(self, connection: 'Connection') -> None:
        config = connection.get_config('type_converter') or {}

        # build first so a bad entry leaves the tables untouched
        from_rules = {
            _native_type_key(native_type): rule_from_config(rule, _FROM)
            for native_type, rule in (config.get('from') or {}).items()
            }
        to_rules = {
            _value_type_key(type_): rule_from_config(rule, _TO)
            for type_, rule in (config.get('to') or {}).items()
            }

        self._from_rules.update(from_rules)
        self._to_rules.update(to_rules)
        logger.debug(f'Loaded {len(from_rules)} from-SQL and {len(to_rules)} to-SQL conversion rules')

    def can_convert_from(self, raw: Any, column: ColumnInfo) -> bool:
        return getattr(column, 'native_type', None) in self._from_rules

    def can_convert_to(self, value: Any, context: Any = None) -> bool:
        if is_scalar(value):
            return False
        return type(value) in self._to_rules

    def convert_from(self, raw: Any, column: ColumnInfo) -> Any:
        native_type = getattr(column, 'native_type', None)
        rule = self._from_rules.get(native_type)
        if rule is None:
            raise NotSupported(f'No conversion rule for native type {native_type!r}')
        return rule.apply(raw, column)

    def convert_to(self, value: Any, context: Any = None) -> Any:
        rule = None if is_scalar(value) else self._to_rules.get(type(value))
        if rule is None:
            raise NotSupported(f'No conversion rule for {type(value).__name__}')
        return rule.apply(value, _as_context(context))


class DisabledTypeConverter(TypeConverter):
    """Converter that declines every value; native handling always applies.
    """

    def can_convert_from(self, raw: Any, column: ColumnInfo) -> bool:
        return False

    def can_convert_to(self, value: Any, context: Any = None) -> bool:
        return False

    def convert_from(self, raw: Any, column: ColumnInfo) -> Any:
        raise NotSupported('Type conversion is disabled')

    def convert_to(self, value: Any, context: Any = None) -> Any:
        raise NotSupported('Type conversion is disabled')


_CONVERTER_REGISTRY: dict[str, type[TypeConverter]] = {
    'table': TableTypeConverter,
    'disabled': DisabledTypeConverter,
}


def get_available_converters() -> list[str]:
    """Return list of converter variant names."""
    return list(_CONVERTER_REGISTRY.keys())


def get_type_converter(name: str = 'table') -> TypeConverter:
    """Create a fresh converter of the named variant."""
    if name not in _CONVERTER_REGISTRY:
        available = get_available_converters()
        raise InvalidArgument(f'Unsupported converter: {name}. Available: {available}')
    return _CONVERTER_REGISTRY[name]()
