import pytest

from crossflow.reporting import format_duration


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (None, "N/A"),
        (0.25, "250ms"),
        (12.34, "12.3s"),
        (125, "2m 5s"),
    ],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
