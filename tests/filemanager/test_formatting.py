import pytest

from app.packages.filemanager.utils.formatting import format_duration, format_size


@pytest.mark.parametrize(
    "size, expected",
    [
        (0, ""),
        (None, ""),
        (1023, "1023.0 B"),
        (1024, "1.0 KB"),
        (1536, "1.5 KB"),
        (1073741824, "1.0 GB"),
    ],
)
def test_format_size(size, expected):
    assert format_size(size) == expected


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, ""), (None, ""), (59, "0:59"), (90, "1:30"), (3661, "61:01")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
