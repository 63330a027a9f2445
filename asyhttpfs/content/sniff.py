"""
Content type sniffing for files without a known extension.
Follows the WHATWG MIME sniffing algorithm, see https://mimesniff.spec.whatwg.org/
"""

SNIFF_LEN = 512

HTML_TAGS = [
	b'<!DOCTYPE HTML',
	b'<HTML',
	b'<HEAD',
	b'<SCRIPT',
	b'<IFRAME',
	b'<H1',
	b'<DIV',
	b'<FONT',
	b'<TABLE',
	b'<A',
	b'<STYLE',
	b'<TITLE',
	b'<B',
	b'<BODY',
	b'<BR',
	b'<P',
	b'<!--',
]

# (offset, signature, content type)
EXACT_SIGNATURES = [
	(0, b'%PDF-', 'application/pdf'),
	(0, b'%!PS-Adobe-', 'application/postscript'),
	(0, b'\xfe\xff', 'text/plain; charset=utf-16be'),
	(0, b'\xff\xfe', 'text/plain; charset=utf-16le'),
	(0, b'\xef\xbb\xbf', 'text/plain; charset=utf-8'),
	(0, b'\x00\x00\x01\x00', 'image/x-icon'),
	(0, b'\x00\x00\x02\x00', 'image/x-icon'),
	(0, b'BM', 'image/bmp'),
	(0, b'GIF87a', 'image/gif'),
	(0, b'GIF89a', 'image/gif'),
	(0, b'\x89PNG\x0d\x0a\x1a\x0a', 'image/png'),
	(0, b'\xff\xd8\xff', 'image/jpeg'),
	(0, b'ID3', 'audio/mpeg'),
	(0, b'OggS\x00', 'application/ogg'),
	(0, b'MThd\x00\x00\x00\x06', 'audio/midi'),
	(0, b'\x1a\x45\xdf\xa3', 'video/webm'),
	(0, b'wOFF', 'font/woff'),
	(0, b'wOF2', 'font/woff2'),
	(0, b'OTTO', 'font/otf'),
	(0, b'ttcf', 'font/collection'),
	(0, b'\x00\x01\x00\x00', 'font/ttf'),
	(0, b'\x1f\x8b\x08', 'application/x-gzip'),
	(0, b'PK\x03\x04', 'application/zip'),
	(0, b'Rar!\x1a\x07\x00', 'application/x-rar-compressed'),
	(0, b'Rar!\x1a\x07\x01\x00', 'application/x-rar-compressed'),
	(0, b'7z\xbc\xaf\x27\x1c', 'application/x-7z-compressed'),
	(0, b'\x00asm\x01\x00\x00\x00', 'application/wasm'),
]

# RIFF and FORM containers carry their format at offset 8
RIFF_FORMATS = {
	b'WEBPVP' : 'image/webp',
	b'WAVE' : 'audio/wave',
	b'AVI ' : 'video/avi',
}

BINARY_BYTES = set(range(0x00, 0x09)) | {0x0B} | set(range(0x0E, 0x1B)) | set(range(0x1C, 0x20))
WHITESPACE_BYTES = b'\t\n\x0c\r '
TAG_TERMINATORS = b' >'


def _is_html(data:bytes) -> bool:
	data = data.lstrip(WHITESPACE_BYTES)
	for tag in HTML_TAGS:
		if len(data) < len(tag) + 1:
			continue
		if data[:len(tag)].upper() != tag:
			continue
		if data[len(tag)] in TAG_TERMINATORS:
			return True
	return False

def _is_mp4(data:bytes) -> bool:
	if len(data) < 12:
		return False
	box_size = int.from_bytes(data[:4], 'big')
	if len(data) < box_size or box_size % 4 != 0:
		return False
	if data[4:8] != b'ftyp':
		return False
	for st in range(8, box_size, 4):
		if st == 12:
			# minor version number, not a brand
			continue
		if data[st:st+3] == b'mp4':
			return True
	return False

def detect_content_type(data:bytes) -> str:
	"""
	Returns the MIME type for the first (at most) 512 bytes of a content.
	Never fails, application/octet-stream is the fallback.
	"""
	data = data[:SNIFF_LEN]

	if _is_html(data):
		return 'text/html; charset=utf-8'
	if data.lstrip(WHITESPACE_BYTES)[:5] == b'<?xml':
		return 'text/xml; charset=utf-8'

	for offset, sig, ctype in EXACT_SIGNATURES:
		if data[offset:offset+len(sig)] == sig:
			return ctype

	if data[:4] == b'RIFF':
		for fmt, ctype in RIFF_FORMATS.items():
			if data[8:8+len(fmt)] == fmt:
				return ctype
	if data[:4] == b'FORM' and data[8:12] == b'AIFF':
		return 'audio/aiff'
	if _is_mp4(data):
		return 'video/mp4'

	for b in data:
		if b in BINARY_BYTES:
			return 'application/octet-stream'
	return 'text/plain; charset=utf-8'
