#!/usr/bin/env python3
"""
File Server

Serves a directory over HTTP(S) with directory browsing, uploads,
conditional requests and byte range (partial content) downloads.

Usage:
    asyhttpfs-server [directory] [--host HOST] [--port PORT] [--ssl]

Example:
    asyhttpfs-server ./downloads --host 127.0.0.1 --port 9999
"""

import os
import sys
import asyncio
import logging
import argparse

from asyhttpfs import logger
from asyhttpfs._version import __version__
from asyhttpfs.common.config import FileServerConfig
from asyhttpfs.common.certmanager import CertManager
from asyhttpfs.common.target import ServerTarget, ServerProto
from asyhttpfs.fileserver.handler import FileServerHandler
from asyhttpfs.protocol.http.httpserver import HTTPServer


def build_target(config:FileServerConfig):
    if config.use_ssl is False:
        return ServerTarget(config.host, config.port, ServerProto.SERVER_TCP), None
    certmanager = CertManager(config.certfile, config.keyfile)
    ssl_ctx, err = certmanager.get_ssl_context(config.host)
    if err is not None:
        return None, err
    return ServerTarget(config.host, config.port, ServerProto.SERVER_SSL_TCP, ssl_ctx=ssl_ctx), None


def build_server(config:FileServerConfig, log_callback=None):
    """Returns an (HTTPServer, err) tuple for the given configuration."""
    try:
        config.validate()
        target, err = build_target(config)
        if err is not None:
            raise err
        handler_factory = lambda: FileServerHandler(config)
        return HTTPServer(handler_factory, target, log_callback=log_callback), None
    except Exception as e:
        return None, e


async def run_file_server(config:FileServerConfig):
    log_callback = None
    if config.debug:
        async def log_callback(msg):
            logger.debug(f"[FILE-SERVER] {msg}")

    server, err = build_server(config, log_callback=log_callback)
    if err is not None:
        logger.error(f"Server error: {err}")
        return False, err

    logger.info(f"Serving files from: {os.path.abspath(config.root)}")
    logger.info(f"Address: {server.target.get_url(config.files_prefix + '/')}")
    try:
        return await server.serve()
    finally:
        await server.terminate()
        logger.info("Server stopped")


def parse_extensions(text):
    if not text:
        return None
    allowed_extensions = set()
    for ext in text.split(','):
        ext = ext.strip()
        if not ext:
            continue
        if not ext.startswith('.'):
            ext = '.' + ext
        allowed_extensions.add(ext.lower())
    return allowed_extensions


def get_parser():
    parser = argparse.ArgumentParser(
        description='asyhttpfs file server - directory browsing, uploads and range downloads',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  %(prog)s                                # Serve the current directory on 127.0.0.1:8080
  %(prog)s /home/user/files               # Serve files from directory
  %(prog)s /home/user/files --host 0.0.0.0  # Bind to all interfaces
  %(prog)s /home/user/files --ssl         # HTTPS with a self-signed certificate
        ''')
    parser.add_argument('directory', nargs='?', default='.', help='Directory to serve files from (default: current directory)')
    parser.add_argument('--host', '-H', default='127.0.0.1', help='Host to bind to (default: 127.0.0.1)')
    parser.add_argument('--port', '-p', type=int, default=8080, help='Port to bind to (default: 8080)')
    parser.add_argument('--ssl', action='store_true', help='Serve over HTTPS')
    parser.add_argument('--cert', help='PEM certificate file for --ssl (self-signed one is generated if omitted)')
    parser.add_argument('--key', help='PEM private key file for --ssl')
    parser.add_argument('--etag', action='store_true', help='Publish weak ETags (mtime and size based) for files')
    parser.add_argument('--max-upload-size', type=int, default=2*1024*1024*1024, help='Maximum upload size per request in bytes (default: 2GB)')
    parser.add_argument('--allowed-extensions', type=str, help='Comma-separated list of allowed upload extensions (e.g., ".txt,.jpg")')
    parser.add_argument('--debug', '-d', action='store_true', help='Enable debug logging')
    parser.add_argument('--version', '-v', action='version', version=f'asyhttpfs {__version__}')
    return parser


def main():
    parser = get_parser()
    args = parser.parse_args()

    if args.debug:
        logger.setLevel(logging.DEBUG)

    config = FileServerConfig(
        root=args.directory,
        host=args.host,
        port=args.port,
        max_upload_size=args.max_upload_size,
        emit_etag=args.etag,
        use_ssl=args.ssl,
        certfile=args.cert,
        keyfile=args.key,
        allowed_extensions=parse_extensions(args.allowed_extensions),
        debug=args.debug,
    )
    try:
        config.validate()
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    try:
        _, err = asyncio.run(run_file_server(config))
    except KeyboardInterrupt:
        print("\nServer stopped by user")
        return
    if err is not None:
        print(f"Failed to start server: {err}")
        sys.exit(1)


if __name__ == '__main__':
    main()
