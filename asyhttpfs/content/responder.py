"""
Serves a Resource for a GET/HEAD request: validators, conditional requests,
content type resolution and single/multi byte range responses.
"""
import mimetypes

import h11

from asyhttpfs import logger
from asyhttpfs.common.config import FileServerConfig
from asyhttpfs.common.exceptions import MalformedHeaderError, NoOverlapError, ResourceUnavailableError
from asyhttpfs.content.validators import format_http_date, is_zero_time
from asyhttpfs.content.preconditions import check_preconditions
from asyhttpfs.content.ranges import parse_range, sum_ranges_size
from asyhttpfs.content.multipart import MultiRangeProducer
from asyhttpfs.content.resource import Resource
from asyhttpfs.content.sniff import detect_content_type, SNIFF_LEN
from asyhttpfs.protocol.http.headers import RequestHeaders, ResponseHeaders


class BytesSource:
	def __init__(self, data:bytes):
		self.data = data
		self.pos = 0

	async def read(self, n:int = -1) -> bytes:
		if n < 0:
			n = len(self.data) - self.pos
		chunk = self.data[self.pos:self.pos+n]
		self.pos += len(chunk)
		return chunk


class ResourceSource:
	def __init__(self, resource:Resource):
		self.resource = resource

	async def read(self, n:int = -1) -> bytes:
		return self.resource.read(n)


class ResponseWire:
	"""
	Status, headers and body of a prepared response.
	body_length is the exact number of bytes to send, -1 means until EOF.
	"""
	def __init__(self, status_code:int, headers:ResponseHeaders, body = None, body_length:int = 0, producer:MultiRangeProducer = None):
		self.status_code = status_code
		self.headers = headers
		self.body = body
		self.body_length = body_length
		self.producer = producer

	async def iter_body(self, chunk_size:int = 64*1024):
		if self.body is None:
			return
		remaining = self.body_length
		while remaining != 0:
			n = chunk_size
			if remaining > 0:
				n = min(chunk_size, remaining)
			chunk = await self.body.read(n)
			if not chunk:
				if remaining > 0:
					raise ResourceUnavailableError('body', message = 'Body ended %d bytes early' % remaining)
				break
			if remaining > 0:
				remaining -= len(chunk)
			yield chunk

	async def read_all(self, chunk_size:int = 64*1024) -> bytes:
		data = b''
		async for chunk in self.iter_body(chunk_size):
			data += chunk
		return data

	async def aclose(self):
		if self.producer is not None:
			await self.producer.aclose()
			self.producer = None

	def __repr__(self):
		return 'ResponseWire(status_code=%r, headers=%r, body_length=%r)' % (self.status_code, self.headers, self.body_length)


class ContentResponder:
	def __init__(self, config:FileServerConfig = None):
		if config is None:
			config = FileServerConfig()
		self.config = config
		self.chunk_size = config.chunk_size
		self.pipe_size = config.pipe_size

	def resolve_content_type(self, resource:Resource, response_headers:ResponseHeaders) -> str:
		if 'Content-Type' in response_headers:
			return response_headers.get('Content-Type')
		ctype, _ = mimetypes.guess_type(resource.name)
		if ctype is None:
			# decide between text and binary by the first bytes
			buf = b''
			while len(buf) < SNIFF_LEN:
				chunk = resource.read(SNIFF_LEN - len(buf))
				if not chunk:
					break
				buf += chunk
			ctype = detect_content_type(buf)
			resource.seek(0)
		response_headers.set('Content-Type', ctype)
		return ctype

	def error_wire(self, status_code:int, message:str, response_headers:ResponseHeaders) -> ResponseWire:
		body = (message + '\n').encode('utf-8')
		response_headers.delete('Content-Encoding')
		response_headers.set('Content-Type', 'text/plain; charset=utf-8')
		response_headers.set('X-Content-Type-Options', 'nosniff')
		response_headers.set('Content-Length', len(body))
		return ResponseWire(status_code, response_headers, BytesSource(body), len(body))

	async def prepare(self, method:str, request_headers:RequestHeaders, resource:Resource, response_headers:ResponseHeaders = None) -> ResponseWire:
		if response_headers is None:
			response_headers = ResponseHeaders()
		if resource.etag is not None and 'ETag' not in response_headers:
			response_headers.set('ETag', resource.etag)

		if not is_zero_time(resource.mtime):
			response_headers.set('Last-Modified', format_http_date(resource.mtime))

		done, status_code, range_header = check_preconditions(method, request_headers, response_headers, resource.mtime)
		if done is True:
			logger.debug('Precondition short circuit for %s: %s' % (resource.name, status_code))
			if status_code == 412:
				response_headers.set('Content-Length', 0)
			return ResponseWire(status_code, response_headers)

		ctype = self.resolve_content_type(resource, response_headers)

		size = resource.size
		status_code = 200
		send_size = size
		body = ResourceSource(resource)
		producer = None
		if size >= 0:
			try:
				ranges = parse_range(range_header, size)
			except NoOverlapError as e:
				response_headers.set('Content-Range', 'bytes */%d' % size)
				return self.error_wire(416, e.message, response_headers)
			except MalformedHeaderError as e:
				return self.error_wire(416, e.message, response_headers)

			if sum_ranges_size(ranges) > size:
				# more bytes than the whole content, most likely an attack or a broken client
				logger.debug('Ignoring oversubscribed Range header %r for %s' % (range_header, resource.name))
				ranges = []

			if len(ranges) == 1:
				ra = ranges[0]
				resource.seek(ra.start)
				send_size = ra.length
				status_code = 206
				response_headers.set('Content-Range', ra.content_range(size))
			elif len(ranges) > 1:
				producer = MultiRangeProducer(resource, ranges, ctype, size, chunk_size = self.chunk_size, pipe_size = self.pipe_size)
				send_size = producer.encoded_size()
				status_code = 206
				response_headers.set('Content-Type', producer.writer.content_type('byteranges'))
				body = producer

			response_headers.set('Accept-Ranges', 'bytes')
			if 'Content-Encoding' not in response_headers:
				response_headers.set('Content-Length', send_size)

		if method == 'HEAD':
			return ResponseWire(status_code, response_headers, None, send_size)
		if producer is not None:
			producer.start()
		return ResponseWire(status_code, response_headers, body, send_size, producer)

	async def respond(self, wrapper, method:str, request_headers:RequestHeaders, resource:Resource, response_headers:ResponseHeaders = None):
		"""
		Prepares the response and writes it through the h11 connection wrapper.
		The multi-range producer (if any) is always stopped before returning.
		"""
		wire = await self.prepare(method, request_headers, resource, response_headers)
		try:
			headers = wrapper.basic_headers() + wire.headers.to_list()
			await wrapper.send(h11.Response(status_code=wire.status_code, headers=headers))
			if method != 'HEAD':
				async for chunk in wire.iter_body(self.chunk_size):
					await wrapper.send(h11.Data(data=chunk))
			await wrapper.send(h11.EndOfMessage())
		finally:
			await wire.aclose()
		return wire
