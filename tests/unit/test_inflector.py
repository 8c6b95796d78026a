import pytest
from activemodel.inflector import pluralize, tableize, underscore, variablize


@pytest.mark.parametrize(('word', 'expected'), [
    ('order', 'orders'),
    ('box', 'boxes'),
    ('category', 'categories'),
    ('day', 'days'),
    ('person', 'people'),
    ('Person', 'People'),
    ('knife', 'knives'),
    ('wolf', 'wolves'),
    ('analysis', 'analyses'),
    ('matrix', 'matrices'),
    ('datum', 'data'),
    ('equipment', 'equipment'),
    ('line_item', 'line_items'),
    ('sales_person', 'sales_people'),
])
def test_pluralize(word, expected):
    assert pluralize(word) == expected


@pytest.mark.parametrize(('name', 'expected'), [
    ('Order', 'orders'),
    ('OrderItem', 'order_items'),
    ('Person', 'people'),
    ('HTTPRequest', 'http_requests'),
    ('shop.Category', 'categories'),
])
def test_tableize(name, expected):
    assert tableize(name) == expected


def test_underscore():
    assert underscore('OrderItem') == 'order_item'
    assert underscore('order-item') == 'order_item'


def test_variablize():
    assert variablize(' First Name ') == 'first_name'
    assert variablize('ORDER-TOTAL') == 'order_total'
