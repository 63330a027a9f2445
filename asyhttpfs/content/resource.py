"""
Readable, seekable resources and the providers that open them.

The responder only depends on the Resource interface, so files on disk and
in-memory byte strings are served the same way.
"""
import io
import os
import datetime
import posixpath
from typing import Dict, List

from asyhttpfs.common.exceptions import ResourceUnavailableError, ResourceNotFoundError


class ResourceStat:
	def __init__(self, name:str, is_dir:bool, size:int = -1, mtime:datetime.datetime = None):
		self.name = name
		self.is_dir = is_dir
		self.size = size
		self.mtime = mtime

	def __repr__(self):
		return 'ResourceStat(name=%r, is_dir=%r, size=%r, mtime=%r)' % (self.name, self.is_dir, self.size, self.mtime)


class Resource:
	"""
	Base class for a single request scoped readable byte sequence.
	size is -1 when unknown, etag is None unless the provider publishes one.
	"""
	def __init__(self, name:str, size:int = -1, mtime:datetime.datetime = None, etag:str = None):
		self.name = name
		self.size = size
		self.mtime = mtime
		self.etag = etag
		self.closed = False

	def __enter__(self):
		return self

	def __exit__(self, exc_type, exc, tb):
		self.close()

	def read(self, n:int = -1) -> bytes:
		raise NotImplementedError()

	def seek(self, offset:int) -> int:
		raise NotImplementedError()

	def close(self):
		self.closed = True


class FileResource(Resource):
	def __init__(self, path:str, name:str = None, etag:str = None):
		try:
			self.fileobj = open(path, 'rb')
		except FileNotFoundError as e:
			raise ResourceNotFoundError(path, e)
		except OSError as e:
			raise ResourceUnavailableError(path, e)
		try:
			st = os.fstat(self.fileobj.fileno())
		except OSError as e:
			self.fileobj.close()
			raise ResourceUnavailableError(path, e)

		mtime = datetime.datetime.fromtimestamp(st.st_mtime, tz=datetime.timezone.utc)
		super().__init__(name or os.path.basename(path), st.st_size, mtime, etag)
		self.path = path

	def read(self, n:int = -1) -> bytes:
		return self.fileobj.read(n)

	def seek(self, offset:int) -> int:
		return self.fileobj.seek(offset, io.SEEK_SET)

	def close(self):
		if self.closed is True:
			return
		self.fileobj.close()
		super().close()


class MemoryResource(Resource):
	def __init__(self, name:str, data:bytes, mtime:datetime.datetime = None, etag:str = None, size:int = None):
		if size is None:
			size = len(data)
		super().__init__(name, size, mtime, etag)
		self.buffer = io.BytesIO(data)

	def read(self, n:int = -1) -> bytes:
		return self.buffer.read(n)

	def seek(self, offset:int) -> int:
		return self.buffer.seek(offset, io.SEEK_SET)


class ResourceProvider:
	"""
	Resolves request paths ('/a/b.txt') to resources.
	Paths are always relative to the provider's own root.
	"""
	def stat(self, path:str) -> ResourceStat:
		raise NotImplementedError()

	def open(self, path:str) -> Resource:
		raise NotImplementedError()

	def listdir(self, path:str) -> List[str]:
		raise NotImplementedError()


class LocalResourceProvider(ResourceProvider):
	def __init__(self, root:str, emit_etag:bool = False):
		self.root = os.path.abspath(root)
		self.emit_etag = emit_etag
		if not os.path.isdir(self.root):
			raise ValueError('Root is not a directory: %s' % self.root)

	def resolve(self, path_request:str) -> str:
		"""
		Maps a request path to an absolute path inside root.
		Empty, '.' and '..' components are dropped so the result never leaves root.
		"""
		if not path_request:
			return self.root
		normalized_path = path_request.replace('\\', '/')
		path_components = []
		for component in normalized_path.split('/'):
			if component in ('', '.', '..'):
				continue
			path_components.append(component)

		safe_path = os.path.abspath(os.path.join(self.root, *path_components))
		try:
			if os.path.commonpath([safe_path, self.root]) != self.root:
				raise ResourceNotFoundError(path_request)
		except ValueError as e:
			# different drives on windows
			raise ResourceNotFoundError(path_request, e)
		return safe_path

	def stat(self, path:str) -> ResourceStat:
		full_path = self.resolve(path)
		try:
			st = os.stat(full_path)
		except FileNotFoundError as e:
			raise ResourceNotFoundError(path, e)
		except OSError as e:
			raise ResourceUnavailableError(path, e)
		is_dir = os.path.isdir(full_path)
		mtime = datetime.datetime.fromtimestamp(st.st_mtime, tz=datetime.timezone.utc)
		return ResourceStat(os.path.basename(full_path), is_dir, st.st_size, mtime)

	def open(self, path:str) -> Resource:
		full_path = self.resolve(path)
		if os.path.isdir(full_path):
			raise ResourceUnavailableError(path, message = 'Resource "%s" is a directory' % path)
		resource = FileResource(full_path)
		if self.emit_etag is True:
			resource.etag = weak_etag(resource)
		return resource

	def listdir(self, path:str) -> List[str]:
		full_path = self.resolve(path)
		try:
			entries = os.listdir(full_path)
		except FileNotFoundError as e:
			raise ResourceNotFoundError(path, e)
		except OSError as e:
			raise ResourceUnavailableError(path, e)
		result = []
		for name in sorted(entries):
			if os.path.isdir(os.path.join(full_path, name)):
				name += '/'
			result.append(name)
		return result


class MemoryResourceProvider(ResourceProvider):
	"""Provider over a {'/dir/name': bytes} mapping, directories are implied by the keys"""
	def __init__(self, files:Dict[str, bytes] = None, mtime:datetime.datetime = None, emit_etag:bool = False):
		self.files = {}
		self.mtime = mtime
		self.emit_etag = emit_etag
		for path, data in (files or {}).items():
			self.files[self.normalize(path)] = data

	@staticmethod
	def normalize(path:str) -> str:
		path = posixpath.normpath('/' + path.strip('/'))
		return path

	def _is_dir(self, path:str) -> bool:
		if path == '/':
			return True
		prefix = path + '/'
		return any(p.startswith(prefix) for p in self.files)

	def stat(self, path:str) -> ResourceStat:
		path = self.normalize(path)
		if path in self.files:
			return ResourceStat(posixpath.basename(path), False, len(self.files[path]), self.mtime)
		if self._is_dir(path):
			return ResourceStat(posixpath.basename(path), True, 0, self.mtime)
		raise ResourceNotFoundError(path)

	def open(self, path:str) -> Resource:
		path = self.normalize(path)
		if path not in self.files:
			raise ResourceNotFoundError(path)
		resource = MemoryResource(posixpath.basename(path), self.files[path], self.mtime)
		if self.emit_etag is True:
			resource.etag = weak_etag(resource)
		return resource

	def listdir(self, path:str) -> List[str]:
		path = self.normalize(path)
		if not self._is_dir(path):
			raise ResourceNotFoundError(path)
		prefix = path.rstrip('/') + '/'
		entries = set()
		for p in self.files:
			if not p.startswith(prefix):
				continue
			rest = p[len(prefix):]
			if '/' in rest:
				entries.add(rest.split('/', 1)[0] + '/')
			else:
				entries.add(rest)
		return sorted(entries)


def weak_etag(resource:Resource) -> str:
	mtime = 0
	if resource.mtime is not None:
		mtime = int(resource.mtime.timestamp())
	return 'W/"%x-%x"' % (mtime, max(resource.size, 0))
