"""
multipart/byteranges encoding for responses with more than one range.

The body is produced by a separate task that writes into a bounded BytePipe
while the HTTP writer drains the other end. Closing the reader side makes the
producer fail on its next write, so an aborted client never leaves it blocked.
"""
import os
import asyncio
from typing import Dict, List

from asyhttpfs import logger
from asyhttpfs.common.exceptions import PipeClosedError
from asyhttpfs.content.ranges import ByteRange


def random_boundary() -> str:
	return os.urandom(30).hex()


class CountingSink:
	def __init__(self):
		self.count = 0

	def write(self, data:bytes) -> int:
		self.count += len(data)
		return len(data)


class MultipartWriter:
	"""
	Produces the framing bytes of a MIME multipart body.
	Part bodies are written by the caller between create_part() calls.
	"""
	def __init__(self, sink = None, boundary:str = None):
		self.sink = sink
		self.boundary = boundary
		if self.boundary is None:
			self.boundary = random_boundary()
		self.parts = 0

	def content_type(self, subtype:str = 'byteranges') -> str:
		return 'multipart/%s; boundary=%s' % (subtype, self.boundary)

	def _emit(self, data:bytes) -> bytes:
		if self.sink is not None:
			self.sink.write(data)
		return data

	def create_part(self, header:Dict[str, str]) -> bytes:
		buf = []
		if self.parts > 0:
			buf.append('\r\n--%s\r\n' % self.boundary)
		else:
			buf.append('--%s\r\n' % self.boundary)
		for key in sorted(header.keys()):
			buf.append('%s: %s\r\n' % (key, header[key]))
		buf.append('\r\n')
		self.parts += 1
		return self._emit(''.join(buf).encode('latin-1'))

	def close(self) -> bytes:
		if self.parts > 0:
			return self._emit(('\r\n--%s--\r\n' % self.boundary).encode('latin-1'))
		return self._emit(('--%s--\r\n' % self.boundary).encode('latin-1'))


def ranges_mime_size(ranges:List[ByteRange], content_type:str, content_size:int, boundary:str) -> int:
	"""Exact length of the multipart/byteranges body for the given ranges"""
	sink = CountingSink()
	mw = MultipartWriter(sink, boundary)
	enc_size = 0
	for ra in ranges:
		mw.create_part(ra.mime_header(content_type, content_size))
		enc_size += ra.length
	mw.close()
	return enc_size + sink.count


class BytePipe:
	"""
	Bounded in-memory byte channel between one writer task and one reader.

	close() is called by the writer when it is done (optionally with the error
	that stopped it), abort() by the reader when it will not read any more.
	"""
	def __init__(self, maxsize:int = 8):
		self._queue = asyncio.Queue(maxsize)
		self._buffer = b''
		self._eof = False
		self._closed = False
		self._err = None
		self.aborted_evt = asyncio.Event()

	@property
	def aborted(self) -> bool:
		return self.aborted_evt.is_set()

	async def write(self, data:bytes):
		if self.aborted is True or self._closed is True:
			raise PipeClosedError()
		if len(data) == 0:
			return
		await self._queue.put(data)
		if self.aborted is True:
			raise PipeClosedError()

	async def close(self, err:Exception = None):
		if self._closed is True:
			return
		self._closed = True
		self._err = err
		if self.aborted is True:
			return
		await self._queue.put(None)

	def abort(self):
		if self.aborted is True:
			return
		self.aborted_evt.set()
		# wake up a writer blocked on a full queue
		while not self._queue.empty():
			self._queue.get_nowait()

	async def read(self, n:int = -1) -> bytes:
		if self.aborted is True:
			raise PipeClosedError('Read from an aborted pipe')
		while len(self._buffer) == 0:
			if self._eof is True:
				if self._err is not None:
					raise self._err
				return b''
			item = await self._queue.get()
			if item is None:
				self._eof = True
				continue
			self._buffer = item

		if n < 0 or n >= len(self._buffer):
			data, self._buffer = self._buffer, b''
			return data
		data = self._buffer[:n]
		self._buffer = self._buffer[n:]
		return data


class MultiRangeProducer:
	def __init__(self, resource, ranges:List[ByteRange], content_type:str, size:int, boundary:str = None, chunk_size:int = 64*1024, pipe_size:int = 8):
		self.resource = resource
		self.ranges = ranges
		self.content_type = content_type
		self.size = size
		self.chunk_size = chunk_size
		self.writer = MultipartWriter(boundary = boundary)
		self.pipe = BytePipe(pipe_size)
		self.producer_task = None

	@property
	def boundary(self) -> str:
		return self.writer.boundary

	def encoded_size(self) -> int:
		return ranges_mime_size(self.ranges, self.content_type, self.size, self.boundary)

	def start(self):
		if self.producer_task is None:
			self.producer_task = asyncio.create_task(self.__produce())
		return self.producer_task

	async def __produce(self):
		try:
			for ra in self.ranges:
				await self.pipe.write(self.writer.create_part(ra.mime_header(self.content_type, self.size)))
				self.resource.seek(ra.start)
				remaining = ra.length
				while remaining > 0:
					chunk = self.resource.read(min(self.chunk_size, remaining))
					if not chunk:
						raise EOFError('Resource ended %d bytes before the end of range %r' % (remaining, ra))
					await self.pipe.write(chunk)
					remaining -= len(chunk)
			await self.pipe.write(self.writer.close())
			await self.pipe.close()
		except PipeClosedError:
			logger.debug('Multi-range consumer went away, stopping producer')
		except Exception as e:
			logger.debug('Multi-range producer failed: %s' % e)
			await self.pipe.close(e)

	async def read(self, n:int = -1) -> bytes:
		return await self.pipe.read(n)

	async def aclose(self):
		self.pipe.abort()
		if self.producer_task is None:
			return
		if not self.producer_task.done():
			self.producer_task.cancel()
		# asyncio.wait never raises the producer's cancellation, only our own
		await asyncio.wait([self.producer_task])
