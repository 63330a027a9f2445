import asyncio

from asyhttpfs import logger
from asyhttpfs.common.target import ServerTarget, ServerProto
from asyhttpfs.common.connection import StreamConnection


class TCPServer:
	def __init__(self, target:ServerTarget, buffer_size:int = 65535):
		self.target = target
		self.buffer_size = buffer_size
		self.connection_queue = asyncio.Queue()
		self.server = None
		self.started_evt = asyncio.Event()

	@property
	def sockets(self):
		if self.server is None:
			return []
		return self.server.sockets

	def get_bound_port(self) -> int:
		for sock in self.sockets:
			return sock.getsockname()[1]
		return None

	async def __handle_connection(self, reader, writer):
		connection = StreamConnection(reader, writer, self.buffer_size)
		logger.debug('New connection from %s:%s' % connection.get_peer()[:2])
		await self.connection_queue.put(connection)

	async def start(self):
		if self.server is not None:
			return self.server
		ssl_ctx = None
		if self.target.protocol == ServerProto.SERVER_SSL_TCP:
			ssl_ctx = self.target.ssl_ctx
		elif self.target.protocol != ServerProto.SERVER_TCP:
			raise Exception('Unknown protocol "%s"' % self.target.protocol)

		self.server = await asyncio.start_server(
			self.__handle_connection,
			self.target.get_ip_or_hostname(),
			self.target.port,
			ssl = ssl_ctx,
		)
		self.started_evt.set()
		return self.server

	async def serve(self):
		try:
			await self.start()
			while self.server.is_serving():
				connection = await self.connection_queue.get()
				yield connection
		finally:
			self.close()

	def close(self):
		if self.server is not None:
			self.server.close()
