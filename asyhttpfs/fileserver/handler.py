"""
HTTP handler of the file server.

Routes:
    /files/...   directory listings and file downloads (GET, HEAD)
    /upload      multipart/form-data upload (POST)
    anything else is redirected to /files/
"""
import os
import urllib.parse

import h11

from asyhttpfs import logger
from asyhttpfs.common.config import FileServerConfig
from asyhttpfs.common.exceptions import ResourceNotFoundError, ResourceUnavailableError
from asyhttpfs.content.resource import ResourceProvider, LocalResourceProvider
from asyhttpfs.content.responder import ContentResponder
from asyhttpfs.fileserver.listing import build_entries, render_directory_listing
from asyhttpfs.fileserver.upload import MultipartFormProcessor, UploadTooLargeError, parse_boundary, make_dirs
from asyhttpfs.protocol.http.httpserver import HTTPServerHandler


class FileServerHandler(HTTPServerHandler):
    """
    Serves one client connection, a new instance is created for every connection.
    """

    def __init__(self, config:FileServerConfig, provider:ResourceProvider = None, print_cb = None):
        super().__init__()
        self.config = config
        self.provider = provider
        if self.provider is None:
            self.provider = LocalResourceProvider(config.root, emit_etag=config.emit_etag)
        self.responder = ContentResponder(config)
        self.print_cb = print_cb

    async def print(self, msg=''):
        if self.print_cb is None:
            logger.debug(msg)
            return
        await self.print_cb(msg)

    def _request_path(self, event):
        url_parts = urllib.parse.urlsplit(event.target.decode('ascii'))
        return urllib.parse.unquote(url_parts.path)

    async def do_GET(self, event):
        await self._route(event, 'GET')

    async def do_HEAD(self, event):
        await self._route(event, 'HEAD')

    async def do_POST(self, event):
        path = self._request_path(event)
        if path.startswith(self.config.upload_path):
            return await self._handle_upload()
        await self.send_simple_response(405, b"Method Not Allowed\n", extra_headers=[("Allow", b"GET, HEAD")])

    async def _route(self, event, method):
        path = self._request_path(event)
        prefix = self.config.files_prefix
        if path == prefix or path.startswith(prefix + '/'):
            return await self._handle_files(method, path[len(prefix):])
        if path.startswith(self.config.upload_path):
            return await self.send_error(404, "Uploads must be POSTed")
        await self.redirect(prefix + '/')

    async def _handle_files(self, method, target_path):
        prefix = self.config.files_prefix
        if target_path == '':
            return await self.redirect(prefix + '/')
        try:
            st = self.provider.stat(target_path)
        except ResourceNotFoundError:
            return await self.send_error(404, "File not found")
        except ResourceUnavailableError as e:
            await self.print(f"[FILE-SERVER] {e}")
            return await self.send_error(503, "Service Unavailable")

        if st.is_dir and not target_path.endswith('/'):
            return await self.redirect(urllib.parse.quote(prefix + target_path + '/'))
        if not st.is_dir and target_path.endswith('/'):
            return await self.redirect(urllib.parse.quote(prefix + target_path.rstrip('/')))

        if st.is_dir:
            return await self._serve_directory_list(target_path)
        await self._serve_file(method, target_path)

    async def _serve_directory_list(self, target_path):
        try:
            names = self.provider.listdir(target_path)
        except ResourceUnavailableError as e:
            await self.print(f"[FILE-SERVER] {e}")
            return await self.send_error(503, "Service Unavailable")
        request_path = urllib.parse.quote(self.config.files_prefix + target_path)
        entries = build_entries(request_path, names)
        html_content = render_directory_listing(
            entries,
            files_prefix=self.config.files_prefix,
            relative_path=target_path,
            upload_path=self.config.upload_path,
        )
        await self.send_simple_response(200, html_content, "text/html; charset=utf-8")

    async def _serve_file(self, method, target_path):
        try:
            resource = self.provider.open(target_path)
        except ResourceNotFoundError:
            return await self.send_error(404, "File not found")
        except ResourceUnavailableError as e:
            await self.print(f"[FILE-SERVER] {e}")
            return await self.send_error(503, "Service Unavailable")

        with resource:
            wire = await self.responder.respond(self._wrapper, method, self.request_headers, resource)
        await self.print(f"[FILE-SERVER] {method} {target_path} -> {wire.status_code} ({wire.body_length} bytes)")

    async def _upload_error(self, status_code, message):
        await self.print(f"[UPLOAD-ERROR] {message}")
        # the rest of the request body is not worth reading
        body = f"{message}\n"
        await self.send_simple_response(status_code, body, extra_headers=[("Connection", b"close")])

    def _upload_target(self, fields, uploaded):
        name = fields.get('name', '').strip()
        if name == '' or name.endswith('/'):
            name += os.path.basename(uploaded.filename.replace('\\', '/'))
        if not isinstance(self.provider, LocalResourceProvider):
            raise ValueError("Uploads need a local directory")
        target = self.provider.resolve(name)
        if target == self.provider.root or os.path.isdir(target):
            raise ValueError(f"Invalid upload name: {name!r}")
        if self.config.allowed_extensions:
            file_ext = os.path.splitext(target)[1].lower()
            if file_ext not in self.config.allowed_extensions:
                raise ValueError(f"File extension '{file_ext}' not allowed. Allowed: {', '.join(sorted(self.config.allowed_extensions))}")
        return target

    async def _handle_upload(self):
        if not isinstance(self.provider, LocalResourceProvider):
            return await self._upload_error(404, "Uploads are not supported")
        boundary = parse_boundary(self.request_headers.get('Content-Type'))
        if boundary is None:
            return await self._upload_error(400, "Only multipart/form-data uploads are supported")
        content_length = self.request_headers.get('Content-Length')
        if content_length.isdigit() and int(content_length) > self.config.max_upload_size:
            return await self._upload_error(413, f"Upload too large: {content_length} bytes (max: {self.config.max_upload_size})")

        processor = MultipartFormProcessor(boundary, self.provider.root, self.config.max_upload_size)
        try:
            while True:
                event = await self._wrapper.next_event()
                if type(event) is h11.Data:
                    processor.process_chunk(event.data)
                    continue
                if type(event) is h11.EndOfMessage:
                    break
                raise ConnectionError(f"Unexpected event while reading upload: {type(event).__name__}")

            fields, files = processor.finalize()
            uploaded = files.get('data')
            if uploaded is None:
                return await self._upload_error(400, "Missing 'data' file field")
            target = self._upload_target(fields, uploaded)
            make_dirs(os.path.dirname(target), self.provider.root)
            os.replace(uploaded.temp_path, target)
            del files['data']

            relative = os.path.relpath(target, self.provider.root).replace(os.sep, '/')
            location = urllib.parse.quote(f"{self.config.files_prefix}/{relative}")
            await self.print(f"[UPLOAD-SUCCESS] Uploaded: {relative} ({uploaded.size:,} bytes)")
            await self.send_simple_response(201, f"Created {location}\n", extra_headers=[("Location", location.encode('ascii'))])

        except UploadTooLargeError as e:
            await self._upload_error(413, str(e))
        except (ValueError, ResourceUnavailableError) as e:
            await self._upload_error(400, f"Upload validation failed: {e}")
        except ConnectionError:
            raise
        except OSError as e:
            await self._upload_error(507, f"Server storage error: {e}")
        finally:
            processor.cleanup()
