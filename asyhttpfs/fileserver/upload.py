"""
Streaming multipart/form-data decoder for the upload endpoint.

Form fields are kept in memory, file parts are streamed into temporary files
next to their destination and only moved in place once the whole request
body was received.
"""
import os
import re
import tempfile

from asyhttpfs import logger

MAX_FIELD_SIZE = 64*1024
MAX_HEADER_SIZE = 8192


class UploadTooLargeError(ValueError):
    pass


class UploadedFile:
    def __init__(self, field_name, filename, temp_path):
        self.field_name = field_name
        self.filename = filename
        self.temp_path = temp_path
        self.size = 0

    def __repr__(self):
        return 'UploadedFile(field_name=%r, filename=%r, size=%r)' % (self.field_name, self.filename, self.size)


def parse_boundary(content_type):
    """Returns the boundary parameter of a multipart/form-data content type or None"""
    if not content_type or not content_type.lower().startswith('multipart/form-data'):
        return None
    match = re.search(r'boundary=("?)([^";]+)\1', content_type, re.IGNORECASE)
    if match is None:
        return None
    return match.group(2).strip()


def parse_content_disposition(headers_text):
    """Extract (name, filename) from the Content-Disposition header of a part."""
    name = None
    filename = None
    for line in headers_text.split('\n'):
        line = line.strip()
        if not line.lower().startswith('content-disposition:'):
            continue
        name_match = re.search(r'(?:^|[;\s])name="([^"]*)"', line, re.IGNORECASE)
        if name_match is None:
            name_match = re.search(r'(?:^|[;\s])name=([^;\s]+)', line, re.IGNORECASE)
        if name_match is not None:
            name = name_match.group(1)
        filename_match = re.search(r'filename="([^"]*)"', line, re.IGNORECASE)
        if filename_match is None:
            filename_match = re.search(r'filename=([^;\s]+)', line, re.IGNORECASE)
        if filename_match is not None:
            filename = filename_match.group(1)
    return name, filename


class MultipartFormProcessor:
    """
    Incremental multipart/form-data parser.
    Feed it the request body with process_chunk() then call finalize().
    """

    def __init__(self, boundary, temp_dir, max_size=2*1024*1024*1024):
        self.delimiter = b'--' + boundary.encode('latin-1')
        self.part_delimiter = b'\r\n' + self.delimiter
        self.temp_dir = temp_dir
        self.max_size = max_size

        self.buffer = b''
        self.state = 'preamble'  # 'preamble', 'after_boundary', 'headers', 'data', 'done'
        self.total_size = 0
        self.fields = {}
        self.files = {}

        self.current_name = None
        self.current_value = None
        self.current_file = None
        self.current_handle = None

    def process_chunk(self, chunk):
        self.total_size += len(chunk)
        if self.total_size > self.max_size:
            raise UploadTooLargeError(f"Upload exceeds size limit of {self.max_size} bytes")
        self.buffer += chunk

        while True:
            if self.state == 'preamble':
                pos = self.buffer.find(self.delimiter)
                if pos == -1:
                    # keep a possibly split delimiter
                    self.buffer = self.buffer[-len(self.delimiter):]
                    return
                self.buffer = self.buffer[pos + len(self.delimiter):]
                self.state = 'after_boundary'

            elif self.state == 'after_boundary':
                if len(self.buffer) < 2:
                    return
                if self.buffer.startswith(b'--'):
                    self.buffer = b''
                    self.state = 'done'
                    return
                if not self.buffer.startswith(b'\r\n'):
                    raise ValueError("Malformed multipart body: garbage after boundary")
                self.buffer = self.buffer[2:]
                self.state = 'headers'

            elif self.state == 'headers':
                header_end = self.buffer.find(b'\r\n\r\n')
                if header_end == -1:
                    if len(self.buffer) > MAX_HEADER_SIZE:
                        raise ValueError("Multipart headers too long or malformed (missing header terminator)")
                    return
                try:
                    headers_text = self.buffer[:header_end].decode('utf-8')
                except UnicodeDecodeError as e:
                    raise ValueError(f"Invalid header encoding: {e}")
                self.buffer = self.buffer[header_end + 4:]
                self._start_part(headers_text)
                self.state = 'data'

            elif self.state == 'data':
                pos = self.buffer.find(self.part_delimiter)
                if pos == -1:
                    keep = len(self.part_delimiter) - 1
                    if len(self.buffer) > keep:
                        self._write_part_data(self.buffer[:-keep])
                        self.buffer = self.buffer[-keep:]
                    return
                self._write_part_data(self.buffer[:pos])
                self.buffer = self.buffer[pos + len(self.part_delimiter):]
                self._finish_part()
                self.state = 'after_boundary'

            else:
                # epilogue is ignored
                self.buffer = b''
                return

    def _start_part(self, headers_text):
        name, filename = parse_content_disposition(headers_text)
        if name is None:
            raise ValueError("Multipart part without a name")
        self.current_name = name
        if filename is None:
            self.current_value = b''
            return
        fd, temp_path = tempfile.mkstemp(prefix='.asyhttpfs-', suffix='.uploading', dir=self.temp_dir)
        self.current_handle = os.fdopen(fd, 'wb')
        self.current_file = UploadedFile(name, filename, temp_path)

    def _write_part_data(self, data):
        if not data:
            return
        if self.current_handle is not None:
            self.current_handle.write(data)
            self.current_file.size += len(data)
            return
        self.current_value += data
        if len(self.current_value) > MAX_FIELD_SIZE:
            raise ValueError(f"Form field '{self.current_name}' is too large")

    def _finish_part(self):
        if self.current_handle is not None:
            self.current_handle.close()
            self.current_handle = None
            previous = self.files.get(self.current_name)
            if previous is not None:
                self._remove(previous.temp_path)
            self.files[self.current_name] = self.current_file
            logger.debug('Received upload part %r' % self.current_file)
        else:
            self.fields.setdefault(self.current_name, self.current_value.decode('utf-8', errors='replace'))
        self.current_name = None
        self.current_value = None
        self.current_file = None

    def finalize(self):
        if self.state != 'done':
            raise ValueError("Incomplete multipart body")
        return self.fields, self.files

    def _remove(self, path):
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass

    def cleanup(self):
        """Removes every temporary file that was not moved to its destination."""
        if self.current_handle is not None:
            self.current_handle.close()
            self.current_handle = None
            self._remove(self.current_file.temp_path)
        for uploaded in self.files.values():
            self._remove(uploaded.temp_path)


def make_dirs(path, root):
    """
    Creates every missing directory of path below root, one segment at a time.
    Segments that already exist are fine, existing non-directories are not.
    """
    rel = os.path.relpath(path, root)
    if rel == os.curdir:
        return
    current = root
    for segment in rel.split(os.sep):
        if segment in ('', os.curdir):
            continue
        current = os.path.join(current, segment)
        try:
            os.mkdir(current)
        except FileExistsError:
            if not os.path.isdir(current):
                raise NotADirectoryError(f"'{current}' exists and is not a directory")
