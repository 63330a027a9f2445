"""
Byte range parsing (RFC 7233).
"""
from typing import Dict, List

from asyhttpfs.common.exceptions import MalformedHeaderError, NoOverlapError

RANGE_PREFIX = 'bytes='


class ByteRange:
	"""Half-open [start, start+length) span of a resource"""
	def __init__(self, start:int, length:int):
		self.start = start
		self.length = length

	@property
	def end(self) -> int:
		"""Last byte position, inclusive"""
		return self.start + self.length - 1

	def content_range(self, size:int) -> str:
		return 'bytes %d-%d/%d' % (self.start, self.end, size)

	def mime_header(self, content_type:str, size:int) -> Dict[str, str]:
		return {
			'Content-Range' : self.content_range(size),
			'Content-Type' : content_type,
		}

	def __eq__(self, other):
		if not isinstance(other, ByteRange):
			return NotImplemented
		return self.start == other.start and self.length == other.length

	def __repr__(self):
		return 'ByteRange(start=%d, length=%d)' % (self.start, self.length)


def _parse_int(s:str, header:str) -> int:
	# int() would also accept '+5', ' 5' and '5_0'
	if s == '' or not s.isdigit() or not s.isascii():
		raise MalformedHeaderError('Range', header, 'invalid range')
	return int(s)

def parse_range(header:str, size:int) -> List[ByteRange]:
	"""
	Parses a Range header against a content of the given size.
	Ranges are returned in request order, they are neither sorted nor merged.

	Raises MalformedHeaderError for syntax errors and NoOverlapError if
	every spec starts past the end of the content.
	"""
	if header is None or header == '':
		return []
	if not header.startswith(RANGE_PREFIX):
		raise MalformedHeaderError('Range', header, 'invalid range')

	ranges = []
	no_overlap = False
	for ra in header[len(RANGE_PREFIX):].split(','):
		ra = ra.strip()
		if ra == '':
			continue
		i = ra.find('-')
		if i < 0:
			raise MalformedHeaderError('Range', header, 'invalid range')
		start, end = ra[:i].strip(), ra[i+1:].strip()
		if start == '':
			# suffix range, the last N bytes
			n = _parse_int(end, header)
			if n > size:
				n = size
			if n == 0:
				# "-0" or any suffix of empty content selects no bytes
				no_overlap = True
				continue
			r_start = size - n
			ranges.append(ByteRange(r_start, size - r_start))
			continue

		r_start = _parse_int(start, header)
		if r_start >= size:
			no_overlap = True
			continue
		if end == '':
			ranges.append(ByteRange(r_start, size - r_start))
			continue
		r_end = _parse_int(end, header)
		if r_start > r_end:
			raise MalformedHeaderError('Range', header, 'invalid range')
		if r_end >= size:
			r_end = size - 1
		ranges.append(ByteRange(r_start, r_end - r_start + 1))

	if no_overlap is True and len(ranges) == 0:
		raise NoOverlapError(size)
	return ranges

def sum_ranges_size(ranges:List[ByteRange]) -> int:
	return sum(ra.length for ra in ranges)
