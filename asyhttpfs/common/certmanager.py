import os
import ssl
import uuid
import datetime
import tempfile
import ipaddress
import logging

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

logger = logging.getLogger('asyhttpfs.certmanager')


class CertManager:
	"""
	Provides the certificate for the TLS listener.
	Either loads the given cert/key files or generates (and caches) a
	self-signed certificate for the listening host.
	"""
	def __init__(self, cert_file = None, key_file = None, key_file_pw = None, cache_dir = None):
		self.cert_file = cert_file
		self.key_file = key_file
		self.key_file_pw = key_file_pw
		self.cache_dir = cache_dir

	def setup(self, hostname = 'localhost'):
		if self.cert_file is not None and self.key_file is not None:
			return self.cert_file, self.key_file

		if self.cache_dir is None:
			self.cache_dir = os.path.join(tempfile.gettempdir(), 'asyhttpfs-certstore')
		os.makedirs(self.cache_dir, exist_ok=True)

		self.cert_file = os.path.join(self.cache_dir, '%s_cert.pem' % hostname)
		self.key_file = os.path.join(self.cache_dir, '%s_key.pem' % hostname)
		if os.path.isfile(self.cert_file) and os.path.isfile(self.key_file):
			logger.debug('Cache hit for %s' % hostname)
			return self.cert_file, self.key_file

		cert, key, err = CertManager.generate_self_signed(hostname)
		if err is not None:
			raise err
		with open(self.cert_file, 'wb') as f:
			f.write(cert)
		with open(self.key_file, 'wb') as f:
			f.write(key)
		return self.cert_file, self.key_file

	def get_ssl_context(self, hostname = 'localhost'):
		try:
			cert_file, key_file = self.setup(hostname)
			ssl_ctx = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
			ssl_ctx.load_cert_chain(cert_file, key_file, password = self.key_file_pw)
			return ssl_ctx, None
		except Exception as e:
			logger.exception('get_ssl_context')
			return None, e

	@staticmethod
	def generate_self_signed(hostname = 'localhost', on = 'asyhttpfs', key_exp = 65537, key_size = 2048, valid_days = 365):
		try:
			logger.debug('Generating self-signed certificate for %s' % hostname)
			one_day = datetime.timedelta(1, 0, 0)
			now = datetime.datetime.now(datetime.timezone.utc)
			private_key = rsa.generate_private_key(
				public_exponent=key_exp,
				key_size=key_size,
			)
			public_key = private_key.public_key()
			name = x509.Name([
				x509.NameAttribute(NameOID.COMMON_NAME, hostname),
				x509.NameAttribute(NameOID.ORGANIZATION_NAME, on),
			])
			alt_names = [x509.DNSName(hostname)]
			try:
				alt_names.append(x509.IPAddress(ipaddress.ip_address(hostname)))
			except ValueError:
				pass

			builder = x509.CertificateBuilder()
			builder = builder.subject_name(name)
			builder = builder.issuer_name(name)
			builder = builder.not_valid_before(now - one_day)
			builder = builder.not_valid_after(now + datetime.timedelta(valid_days, 0, 0))
			builder = builder.serial_number(int(uuid.uuid4()))
			builder = builder.public_key(public_key)
			builder = builder.add_extension(
				x509.SubjectAlternativeName(alt_names), critical=False,
			)
			builder = builder.add_extension(
				x509.BasicConstraints(ca=False, path_length=None), critical=True,
			)
			certificate = builder.sign(private_key=private_key, algorithm=hashes.SHA256())

			cert = certificate.public_bytes(
				encoding=serialization.Encoding.PEM,
			)
			key = private_key.private_bytes(
				encoding=serialization.Encoding.PEM,
				format=serialization.PrivateFormat.TraditionalOpenSSL,
				encryption_algorithm=serialization.NoEncryption()
			)
			return cert, key, None
		except Exception as e:
			logger.exception('generate_self_signed')
			return None, None, e
