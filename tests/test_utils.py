import datetime as dt

import pytest

from timely.utils import format_date, parse_date


@pytest.mark.parametrize('value,expected', [
    ('2024-03-05', dt.date(2024, 3, 5)),
    ('2024-3-5', dt.date(2024, 3, 5)),
    (' 2024-12-31 ', dt.date(2024, 12, 31)),
    ('', None),
    ('   ', None),
    (None, None),
    (dt.date(2020, 2, 29), dt.date(2020, 2, 29)),
    (dt.datetime(2020, 2, 29, 13, 0), dt.date(2020, 2, 29)),
])
def test_parse_date(value, expected):
    assert parse_date(value) == expected


@pytest.mark.parametrize('value', ['2024/03/05', '05-03-2024', '2023-02-29', '2024-00-10', 'tomorrow', 20240305])
def test_parse_date_rejects(value):
    with pytest.raises(ValueError):
        parse_date(value)


def test_format_date():
    assert format_date(dt.date(2024, 3, 5)) == '2024-03-05'
    assert format_date(None) == ''
