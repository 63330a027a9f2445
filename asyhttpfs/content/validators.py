"""
ETag and HTTP-date helpers used by the conditional request evaluator.
See RFC 7232 section 2.3 (entity tags) and RFC 7231 section 7.1.1.1 (HTTP-date).
"""
import math
import datetime
import email.utils
from typing import Tuple

from asyhttpfs.common.exceptions import MalformedHeaderError

TIME_FORMAT = '%a, %d %b %Y %H:%M:%S GMT'
RFC850_FORMAT = '%A, %d-%b-%y %H:%M:%S GMT'
ASCTIME_FORMAT = '%a %b %d %H:%M:%S %Y'

# tried in this order, first match wins
TIME_FORMATS = [
	TIME_FORMAT,
	RFC850_FORMAT,
	ASCTIME_FORMAT,
]

UNIX_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)
HTTP_WHITESPACE = ' \t\r\n'


def trim_string(s:str) -> str:
	return s.strip(HTTP_WHITESPACE)

def scan_etag(s:str) -> Tuple[str, str]:
	"""
	Scans the first entity tag from s.
	Returns the etag (W/"x" or "x") and the rest of the string,
	or two empty strings if s does not start with a valid etag.
	"""
	s = trim_string(s)
	start = 0
	if s.startswith('W/'):
		start = 2
	if len(s[start:]) < 2 or s[start] != '"':
		return '', ''
	for i in range(start + 1, len(s)):
		c = ord(s[i])
		if c == 0x21 or 0x23 <= c <= 0x7E or c >= 0x80:
			continue
		if c == 0x22:
			return s[:i+1], s[i+1:]
		return '', ''
	return '', ''

def etag_strong_match(a:str, b:str) -> bool:
	return a == b and a != '' and a[0] == '"'

def etag_weak_match(a:str, b:str) -> bool:
	return strip_weak(a) == strip_weak(b)

def strip_weak(etag:str) -> str:
	if etag.startswith('W/'):
		return etag[2:]
	return etag

def parse_http_date(text:str) -> datetime.datetime:
	"""
	Parses an HTTP-date in any of the three formats HTTP/1.1 allows.
	The result is always a timezone aware UTC datetime.
	Raises MalformedHeaderError if none of the formats match.
	"""
	if text is None:
		raise MalformedHeaderError('Date', text)
	for layout in TIME_FORMATS:
		try:
			dt = datetime.datetime.strptime(text, layout)
		except ValueError:
			continue
		return dt.replace(tzinfo=datetime.timezone.utc)
	raise MalformedHeaderError('Date', text)

def format_http_date(dt:datetime.datetime = None) -> str:
	"""Generate a RFC 7231 / RFC 9110 IMF-fixdate string"""
	if dt is None:
		dt = datetime.datetime.now(datetime.timezone.utc)
	return email.utils.format_datetime(to_utc(dt), usegmt=True)

def to_utc(dt:datetime.datetime) -> datetime.datetime:
	if dt.tzinfo is None:
		return dt.replace(tzinfo=datetime.timezone.utc)
	return dt.astimezone(datetime.timezone.utc)

def is_zero_time(dt:datetime.datetime) -> bool:
	# resources without a real modification time report the epoch
	if dt is None:
		return True
	if dt.replace(tzinfo=None) == datetime.datetime.min:
		return True
	return to_utc(dt) == UNIX_EPOCH

def unix_seconds(dt:datetime.datetime) -> int:
	return math.floor(to_utc(dt).timestamp())
