from typing import Iterable, List, Tuple, Union

HeaderValue = Union[str, bytes]


def _to_str(x:HeaderValue) -> str:
	if isinstance(x, bytes):
		return x.decode('latin-1')
	return x


class RequestHeaders:
	"""
	Read-only view over the (name, value) pairs of an h11 request.
	Lookups are case insensitive, for repeated headers the first value wins.
	"""
	def __init__(self, headers:Iterable[Tuple[HeaderValue, HeaderValue]] = None):
		self._headers:List[Tuple[str, str]] = []
		if headers is not None:
			for name, value in headers:
				self._headers.append((_to_str(name).lower(), _to_str(value)))

	@staticmethod
	def from_dict(d:dict):
		return RequestHeaders(d.items())

	def get(self, name:str, default:str = '') -> str:
		name = name.lower()
		for hname, value in self._headers:
			if hname == name:
				return value
		return default

	def get_all(self, name:str) -> List[str]:
		name = name.lower()
		return [value for hname, value in self._headers if hname == name]

	def __contains__(self, name:str):
		name = name.lower()
		for hname, _ in self._headers:
			if hname == name:
				return True
		return False

	def __iter__(self):
		return iter(self._headers)

	def __repr__(self):
		return 'RequestHeaders(%r)' % self._headers


class ResponseHeaders:
	"""
	Ordered, case insensitive header map for building a response.
	set() replaces every existing value of the header.
	"""
	def __init__(self, headers:Iterable[Tuple[HeaderValue, HeaderValue]] = None):
		self._headers:List[Tuple[str, str]] = []
		if headers is not None:
			for name, value in headers:
				self.add(_to_str(name), _to_str(value))

	def add(self, name:str, value):
		self._headers.append((name, str(value)))

	def set(self, name:str, value):
		lname = name.lower()
		for i, (hname, _) in enumerate(self._headers):
			if hname.lower() == lname:
				self._headers[i] = (name, str(value))
				self._headers = self._headers[:i+1] + [h for h in self._headers[i+1:] if h[0].lower() != lname]
				return
		self._headers.append((name, str(value)))

	def get(self, name:str, default:str = '') -> str:
		lname = name.lower()
		for hname, value in self._headers:
			if hname.lower() == lname:
				return value
		return default

	def delete(self, name:str):
		lname = name.lower()
		self._headers = [h for h in self._headers if h[0].lower() != lname]

	def __contains__(self, name:str):
		lname = name.lower()
		for hname, _ in self._headers:
			if hname.lower() == lname:
				return True
		return False

	def __iter__(self):
		return iter(self._headers)

	def __len__(self):
		return len(self._headers)

	def to_list(self) -> List[Tuple[bytes, bytes]]:
		return [(name.encode('ascii'), value.encode('latin-1')) for name, value in self._headers]

	def __repr__(self):
		return 'ResponseHeaders(%r)' % self._headers
