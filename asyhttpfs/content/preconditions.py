"""
Conditional request evaluation (RFC 7232).

The evaluator never computes an ETag itself, it compares the request
validators against whatever ETag the caller already put in the response headers.
"""
import enum
import datetime
from typing import Tuple

from asyhttpfs import logger
from asyhttpfs.common.exceptions import MalformedHeaderError
from asyhttpfs.content.validators import scan_etag, trim_string, etag_strong_match, \
	etag_weak_match, parse_http_date, is_zero_time, unix_seconds, to_utc
from asyhttpfs.protocol.http.headers import RequestHeaders, ResponseHeaders

ONE_SECOND = datetime.timedelta(seconds=1)
SAFE_METHODS = ('GET', 'HEAD')


class CondResult(enum.Enum):
	NONE = 0
	TRUE = 1
	FALSE = 2


def check_if_match(request_headers:RequestHeaders, response_headers:ResponseHeaders) -> CondResult:
	im = request_headers.get('If-Match')
	if im == '':
		return CondResult.NONE
	etag_out = response_headers.get('ETag')
	while True:
		im = trim_string(im)
		if len(im) == 0:
			break
		if im[0] == ',':
			im = im[1:]
			continue
		if im[0] == '*':
			return CondResult.TRUE
		etag, remain = scan_etag(im)
		if etag == '':
			break
		if etag_strong_match(etag, etag_out):
			return CondResult.TRUE
		im = remain

	return CondResult.FALSE

def check_if_unmodified_since(request_headers:RequestHeaders, mtime:datetime.datetime) -> CondResult:
	ius = request_headers.get('If-Unmodified-Since')
	if ius == '' or is_zero_time(mtime):
		return CondResult.NONE
	try:
		t = parse_http_date(ius)
	except MalformedHeaderError:
		logger.debug('Ignoring unparsable If-Unmodified-Since: %r' % ius)
		return CondResult.NONE
	# Last-Modified has one second resolution, mtime < t+1s means unmodified
	if to_utc(mtime) < t + ONE_SECOND:
		return CondResult.TRUE
	return CondResult.FALSE

def check_if_none_match(request_headers:RequestHeaders, response_headers:ResponseHeaders) -> CondResult:
	inm = request_headers.get('If-None-Match')
	if inm == '':
		return CondResult.NONE
	etag_out = response_headers.get('ETag')
	buf = inm
	while True:
		buf = trim_string(buf)
		if len(buf) == 0:
			break
		if buf[0] == ',':
			buf = buf[1:]
			continue
		if buf[0] == '*':
			return CondResult.FALSE
		etag, remain = scan_etag(buf)
		if etag == '':
			break
		if etag_weak_match(etag, etag_out):
			return CondResult.FALSE
		buf = remain
	return CondResult.TRUE

def check_if_modified_since(method:str, request_headers:RequestHeaders, mtime:datetime.datetime) -> CondResult:
	if method not in SAFE_METHODS:
		return CondResult.NONE
	ims = request_headers.get('If-Modified-Since')
	if ims == '' or is_zero_time(mtime):
		return CondResult.NONE
	try:
		t = parse_http_date(ims)
	except MalformedHeaderError:
		logger.debug('Ignoring unparsable If-Modified-Since: %r' % ims)
		return CondResult.NONE
	if to_utc(mtime) < t + ONE_SECOND:
		return CondResult.FALSE
	return CondResult.TRUE

def check_if_range(method:str, request_headers:RequestHeaders, response_headers:ResponseHeaders, mtime:datetime.datetime) -> CondResult:
	if method not in SAFE_METHODS:
		return CondResult.NONE
	ir = request_headers.get('If-Range')
	if ir == '':
		return CondResult.NONE
	etag, _ = scan_etag(ir)
	if etag != '':
		if etag_strong_match(etag, response_headers.get('ETag')):
			return CondResult.TRUE
		return CondResult.FALSE
	# If-Range may carry a date instead of an etag.
	# Epoch mtimes count as zero too, no Last-Modified is ever sent for them.
	if mtime is None or is_zero_time(mtime):
		return CondResult.FALSE
	try:
		t = parse_http_date(ir)
	except MalformedHeaderError:
		return CondResult.FALSE
	if unix_seconds(t) == unix_seconds(mtime):
		return CondResult.TRUE
	return CondResult.FALSE

def write_not_modified(response_headers:ResponseHeaders):
	# a 304 keeps only the primary validator
	response_headers.delete('Content-Type')
	response_headers.delete('Content-Length')
	if response_headers.get('ETag') != '':
		response_headers.delete('Last-Modified')

def check_preconditions(method:str, request_headers:RequestHeaders, response_headers:ResponseHeaders, mtime:datetime.datetime) -> Tuple[bool, int, str]:
	"""
	Evaluates the conditional request headers in the order of RFC 7232 section 6.

	Returns a (done, status_code, range_header) tuple. When done is True
	the response must be finished with status_code and no body.
	Otherwise range_header is the Range header to honor ('' for none).
	"""
	ch = check_if_match(request_headers, response_headers)
	if ch == CondResult.NONE:
		ch = check_if_unmodified_since(request_headers, mtime)
	if ch == CondResult.FALSE:
		return True, 412, ''

	ch = check_if_none_match(request_headers, response_headers)
	if ch == CondResult.FALSE:
		if method in SAFE_METHODS:
			write_not_modified(response_headers)
			return True, 304, ''
		return True, 412, ''
	elif ch == CondResult.NONE:
		if check_if_modified_since(method, request_headers, mtime) == CondResult.FALSE:
			write_not_modified(response_headers)
			return True, 304, ''

	range_header = request_headers.get('Range')
	if range_header != '' and check_if_range(method, request_headers, response_headers, mtime) == CondResult.FALSE:
		logger.debug('If-Range validator failed, ignoring Range header')
		range_header = ''
	return False, None, range_header
