# tests/test_order_status.py
import pytest

from storefront.model import LineStatus as L, OrderStatus as S, derive_order_status


@pytest.mark.parametrize("lines, expected", [
    ([], S.PENDING),
    ([L.ORDERED, L.ORDERED], S.PENDING),
    ([L.DELIVERED, L.DELIVERED], S.DELIVERED),
    ([L.CANCELLED], S.CANCELLED),
    ([L.RETURNED, L.RETURNED], S.RETURNED),
    ([L.SHIPPED, L.ORDERED], S.IN_PROGRESS),
    ([L.OUT_FOR_DELIVERY, L.DELIVERED], S.IN_PROGRESS),
    ([L.DELIVERED, L.CANCELLED], S.PARTIALLY_DELIVERED),
    ([L.SHIPPED, L.CANCELLED], S.PARTIALLY_SHIPPED),
    ([L.SHIPPED, L.OUT_FOR_DELIVERY, L.CANCELLED], S.PARTIALLY_SHIPPED),
    ([L.ORDERED, L.CANCELLED], S.IN_PROGRESS),
    ([L.DELIVERED, L.RETURN_REQUESTED], S.IN_PROGRESS),
    ([L.RETURNED, L.CANCELLED], S.IN_PROGRESS),
])
def test_derived_from_line_multiset(lines, expected):
    assert derive_order_status(lines) == expected


def test_order_of_lines_does_not_matter():
    lines = [L.CANCELLED, L.DELIVERED, L.CANCELLED]
    assert derive_order_status(lines) == derive_order_status(reversed(lines)) == S.PARTIALLY_DELIVERED
