import asyncio


class StreamConnection:
	def __init__(self, reader:asyncio.StreamReader, writer:asyncio.StreamWriter, buffer_size:int = 65535):
		self.reader = reader
		self.writer = writer
		self.buffer_size = buffer_size
		self.closing = False
		self.closed_evt = asyncio.Event()

	async def __aenter__(self):
		return self

	async def __aexit__(self, exc_type, exc, tb):
		await self.close()

	def get_extra_info(self, name, default=None):
		return self.writer.get_extra_info(name, default)

	def get_peer(self):
		return self.get_extra_info('peername', ('', 0))

	async def close(self):
		if self.closing is True:
			return
		self.closing = True
		if self.writer is not None:
			self.writer.close()
			try:
				await self.writer.wait_closed()
			except (ConnectionError, OSError):
				# peer already gone
				pass
		self.closed_evt.set()

	async def write(self, data:bytes):
		if self.closing is True:
			raise ConnectionResetError('Connection is closed')
		self.writer.write(data)
		await self.writer.drain()

	async def read_one(self) -> bytes:
		if self.closing is True:
			return b''
		return await self.reader.read(self.buffer_size)

	async def read(self):
		while self.closing is False:
			data = await self.reader.read(self.buffer_size)
			if data == b'':
				break
			yield data
