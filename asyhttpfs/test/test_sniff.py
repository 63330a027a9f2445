import pytest

from asyhttpfs.content.sniff import detect_content_type


@pytest.mark.parametrize("data,expected", [
    (b'', 'text/plain; charset=utf-8'),
    (b'just some words\n', 'text/plain; charset=utf-8'),
    (b'  <html><body>hi</body></html>', 'text/html; charset=utf-8'),
    (b'<!doctype html>\n<p>x</p>', 'text/html; charset=utf-8'),
    (b'<P>paragraph', 'text/html; charset=utf-8'),
    (b'<?xml version="1.0"?><a/>', 'text/xml; charset=utf-8'),
    (b'%PDF-1.7\n', 'application/pdf'),
    (b'\x89PNG\r\n\x1a\n\x00\x00', 'image/png'),
    (b'GIF89a....', 'image/gif'),
    (b'\xff\xd8\xff\xe0', 'image/jpeg'),
    (b'PK\x03\x04rest', 'application/zip'),
    (b'\x1f\x8b\x08\x00', 'application/x-gzip'),
    (b'RIFF\x00\x00\x00\x00WAVEfmt ', 'audio/wave'),
    (b'\x00\x00\x00\x18ftypmp42\x00\x00\x00\x00mp42isom', 'video/mp4'),
    (b'\x00\x01\x02\x03binary', 'application/octet-stream'),
])
def test_detect_content_type(data, expected):
    assert detect_content_type(data) == expected


def test_not_html_without_terminator():
    assert detect_content_type(b'<html5') == 'text/plain; charset=utf-8'


def test_only_first_512_bytes():
    data = b'a' * 512 + b'\x00'
    assert detect_content_type(data) == 'text/plain; charset=utf-8'
