
class AsyHTTPFSError(Exception):
	def __init__(self, message = None):
		self.message = message
		super().__init__(self.message)


class MalformedHeaderError(AsyHTTPFSError):
	def __init__(self, header:str, value:str = None, message = None):
		self.header = header
		self.value = value
		if message is None:
			message = 'Malformed %s header: %r' % (header, value)
		super().__init__(message)


class NoOverlapError(AsyHTTPFSError):
	"""The Range header is well formed but none of its specs overlap the content"""
	def __init__(self, size:int, message = "invalid range: failed to overlap"):
		self.size = size
		super().__init__(message)


class ResourceUnavailableError(AsyHTTPFSError):
	def __init__(self, path:str, innerexception:Exception = None, message = None):
		self.path = path
		self.innerexception = innerexception
		if message is None:
			message = 'Resource "%s" is unavailable! Reason: %s' % (path, innerexception)
		super().__init__(message)


class ResourceNotFoundError(ResourceUnavailableError):
	def __init__(self, path:str, innerexception:Exception = None):
		super().__init__(path, innerexception, message = 'Resource "%s" not found' % path)


class ClientAbortError(AsyHTTPFSError):
	def __init__(self, message = "Client stopped reading the response"):
		super().__init__(message)


class PipeClosedError(ClientAbortError):
	def __init__(self, message = "Write to a closed pipe"):
		super().__init__(message)
