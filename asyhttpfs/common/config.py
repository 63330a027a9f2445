import os
from typing import Set


class FileServerConfig:
	"""
	Settings of one file server instance.
	Built once at startup (see asyhttpfs.examples.fileserver) and handed
	to every handler, nothing here is modified while serving.
	"""
	def __init__(self, root:str = '.', host:str = '127.0.0.1', port:int = 8080, files_prefix:str = '/files',
				upload_path:str = '/upload', max_upload_size:int = 2*1024*1024*1024, chunk_size:int = 64*1024,
				pipe_size:int = 8, emit_etag:bool = False, use_ssl:bool = False, certfile:str = None,
				keyfile:str = None, allowed_extensions:Set[str] = None, debug:bool = False):
		self.root = root
		self.host = host
		self.port = port
		self.files_prefix = files_prefix
		self.upload_path = upload_path
		self.max_upload_size = max_upload_size
		self.chunk_size = chunk_size
		self.pipe_size = pipe_size
		self.emit_etag = emit_etag
		self.use_ssl = use_ssl
		self.certfile = certfile
		self.keyfile = keyfile
		self.allowed_extensions = allowed_extensions
		self.debug = debug

	def validate(self):
		if self.root is None or not os.path.isdir(self.root):
			raise ValueError('Directory "%s" does not exist or is not a directory' % self.root)
		if self.port < 0 or self.port > 65535:
			raise ValueError('Port must be between 0 and 65535, got %s' % self.port)
		if self.max_upload_size < 1024:
			raise ValueError('max_upload_size must be at least 1024 bytes, got %s' % self.max_upload_size)
		if self.chunk_size < 1:
			raise ValueError('chunk_size must be positive, got %s' % self.chunk_size)
		if self.pipe_size < 1:
			raise ValueError('pipe_size must be positive, got %s' % self.pipe_size)
		if not self.files_prefix.startswith('/') or self.files_prefix.endswith('/'):
			raise ValueError('files_prefix must start with "/" and must not end with it, got %r' % self.files_prefix)
		if (self.certfile is None) != (self.keyfile is None):
			raise ValueError('certfile and keyfile must be given together')
		return True

	def __repr__(self):
		return 'FileServerConfig(root=%r, host=%r, port=%r, ssl=%r)' % (self.root, self.host, self.port, self.use_ssl)
