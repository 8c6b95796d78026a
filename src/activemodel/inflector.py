"""
English inflections for deriving table and attribute names.

>>> tableize('Order'), tableize('OrderItem'), tableize('Person')
('orders', 'order_items', 'people')
"""
import re

UNCOUNTABLE = {
    'equipment', 'information', 'rice', 'money', 'species', 'series', 'fish',
    'sheep', 'deer', 'news', 'data', 'metadata',
    }

IRREGULAR = {
    'person': 'people',
    'man': 'men',
    'woman': 'women',
    'child': 'children',
    'mouse': 'mice',
    'goose': 'geese',
    'foot': 'feet',
    'tooth': 'teeth',
    'ox': 'oxen',
    'quiz': 'quizzes',
    }

# (pattern, replacement), first match wins
PLURAL_RULES = [
    (re.compile(r'(matr|vert|ind)(ix|ex)$'), r'\1ices'),
    (re.compile(r'(octop|vir)us$'), r'\1i'),
    (re.compile(r'^(ax|test)is$'), r'\1es'),
    (re.compile(r'sis$'), 'ses'),
    (re.compile(r'(x|ch|ss|sh|s|z)$'), r'\1es'),
    (re.compile(r'([^aeiouy]|qu)y$'), r'\1ies'),
    (re.compile(r'(?:([^f])fe|([lr])f)$'), r'\1\2ves'),
    (re.compile(r'([ti])um$'), r'\1a'),
    (re.compile(r'(tomat|potat|her)o$'), r'\1oes'),
    ]

_CAMEL_BOUNDARY_1 = re.compile(r'([A-Z]+)([A-Z][a-z])')
_CAMEL_BOUNDARY_2 = re.compile(r'([a-z\d])([A-Z])')


def underscore(word: str) -> str:
    """Convert CamelCase (or a dotted/namespaced name) to snake_case.

    >>> underscore('OrderItem'), underscore('HTTPRequest'), underscore('shop.Order')
    ('order_item', 'http_request', 'order')
    """
    word = word.rsplit('.', 1)[-1].rsplit('\\', 1)[-1]
    word = _CAMEL_BOUNDARY_1.sub(r'\1_\2', word)
    word = _CAMEL_BOUNDARY_2.sub(r'\1_\2', word)
    return word.replace('-', '_').lower()


def pluralize(word: str) -> str:
    """Plural form of an English noun, preserving any underscored prefix.

    >>> pluralize('order'), pluralize('category'), pluralize('order_person')
    ('orders', 'categories', 'order_people')
    """
    if not word:
        return word
    prefix, _, last = word.rpartition('_')
    prefix = f'{prefix}_' if prefix else ''
    lower = last.lower()

    if lower in UNCOUNTABLE:
        return word
    if lower in IRREGULAR:
        plural = IRREGULAR[lower]
        if last[:1].isupper():
            plural = plural.capitalize()
        return prefix + plural

    for pattern, replacement in PLURAL_RULES:
        if pattern.search(last):
            return prefix + pattern.sub(replacement, last)
    return f'{word}s'


def tableize(class_name: str) -> str:
    """Table name for a model class name."""
    return pluralize(underscore(class_name))


def variablize(name: str) -> str:
    """Attribute name for a column name.

    >>> variablize('First Name'), variablize('order-total')
    ('first_name', 'order_total')
    """
    return name.strip().lower().replace('-', '_').replace(' ', '_')
