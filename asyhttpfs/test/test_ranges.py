import pytest

from asyhttpfs.common.exceptions import MalformedHeaderError, NoOverlapError
from asyhttpfs.content.ranges import ByteRange, parse_range, sum_ranges_size


@pytest.mark.parametrize("header,size,expected", [
    ('', 10, []),
    ('bytes=0-4', 10, [ByteRange(0, 5)]),
    ('bytes=5-', 10, [ByteRange(5, 5)]),
    ('bytes=-3', 10, [ByteRange(7, 3)]),
    ('bytes=-20', 10, [ByteRange(0, 10)]),
    ('bytes=0-0', 1, [ByteRange(0, 1)]),
    ('bytes=50-149', 100, [ByteRange(50, 50)]),
    ('bytes= 1 - 2 ,', 10, [ByteRange(1, 2)]),
    ('bytes=0-0,2-3', 10, [ByteRange(0, 1), ByteRange(2, 2)]),
    ('bytes=5-6,0-1', 10, [ByteRange(5, 2), ByteRange(0, 2)]),
    ('bytes=10-,0-1', 10, [ByteRange(0, 2)]),
    ('bytes=0-9,0-9', 10, [ByteRange(0, 10), ByteRange(0, 10)]),
])
def test_parse_range(header, size, expected):
    assert parse_range(header, size) == expected


@pytest.mark.parametrize("header", [
    'items=0-1',
    'bytes=5',
    'bytes=5-1',
    'bytes=a-b',
    'bytes=-',
    'bytes=-1-2',
    'bytes=+1-2',
    'bytes=1-+2',
])
def test_malformed(header):
    with pytest.raises(MalformedHeaderError):
        parse_range(header, 10)


@pytest.mark.parametrize("header", [
    'bytes=10-20',
    'bytes=10-',
    'bytes=10-,20-30',
])
def test_no_overlap(header):
    with pytest.raises(NoOverlapError) as excinfo:
        parse_range(header, 10)
    assert excinfo.value.size == 10


def test_content_range():
    ra = parse_range('bytes=50-149', 100)[0]
    assert ra.end == 99
    assert ra.content_range(100) == 'bytes 50-99/100'
    assert ra.mime_header('text/plain', 100) == {
        'Content-Range': 'bytes 50-99/100',
        'Content-Type': 'text/plain',
    }


@pytest.mark.parametrize("size", [1, 7, 100])
def test_ranges_stay_inside_content(size):
    for start in range(size):
        for end in range(start, size + 3):
            ranges = parse_range('bytes=%d-%d' % (start, end), size)
            assert len(ranges) == 1
            ra = ranges[0]
            assert ra.start == start
            assert 0 < ra.length
            assert ra.start + ra.length <= size


def test_sum_ranges_size():
    assert sum_ranges_size([]) == 0
    assert sum_ranges_size([ByteRange(0, 3), ByteRange(5, 4)]) == 7


def test_repr():
    assert repr(ByteRange(1, 2)) == 'ByteRange(start=1, length=2)'


@pytest.mark.parametrize("header,size", [
    ('bytes=-0', 10),
    ('bytes=-5', 0),
    ('bytes=0-,-3', 0),
])
def test_empty_suffix_does_not_overlap(header, size):
    with pytest.raises(NoOverlapError):
        parse_range(header, size)


def test_empty_suffix_is_skipped():
    assert parse_range('bytes=-0,0-1', 10) == [ByteRange(0, 2)]
