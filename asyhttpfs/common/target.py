import ssl
import enum
import ipaddress


class ServerProto(enum.Enum):
	SERVER_TCP = 1
	SERVER_SSL_TCP = 2


class ServerTarget:
	def __init__(self, ip:str, port:int, protocol:ServerProto = ServerProto.SERVER_TCP, ssl_ctx:ssl.SSLContext = None, hostname:str = None):
		self.ip = None
		self.hostname = hostname
		self.port = port
		self.protocol = protocol
		self.ssl_ctx = ssl_ctx

		try:
			ipaddress.ip_address(ip)
			self.ip = ip
		except ValueError:
			if ip is not None:
				self.hostname = ip

		if self.ip is None and self.hostname is None:
			raise Exception('Both IP and Hostname can\'t be none!')

		if self.protocol == ServerProto.SERVER_SSL_TCP and self.ssl_ctx is None:
			raise Exception('SSL server requires an SSL context!')

	def get_ip_or_hostname(self):
		if self.ip is not None:
			return self.ip
		return self.hostname

	def get_url(self, path:str = '/'):
		scheme = 'http'
		if self.protocol == ServerProto.SERVER_SSL_TCP:
			scheme = 'https'
		host = self.get_ip_or_hostname()
		if ':' in host:
			host = '[%s]' % host
		return '%s://%s:%s%s' % (scheme, host, self.port, path)

	def __str__(self):
		t = '==== ServerTarget ====\r\n'
		for k in self.__dict__:
			t += '%s: %s\r\n' % (k, self.__dict__[k])
		return t
