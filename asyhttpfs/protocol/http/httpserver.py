import asyncio
import datetime
import email.utils
import html
import traceback
from itertools import count

import h11

from asyhttpfs import logger
from asyhttpfs._version import __version__
from asyhttpfs.common.connection import StreamConnection
from asyhttpfs.common.exceptions import ClientAbortError
from asyhttpfs.common.target import ServerTarget
from asyhttpfs.protocol.http.headers import RequestHeaders
from asyhttpfs.server import TCPServer

SERVER_IDENT = " ".join(
    [f"asyhttpfs/{__version__}", h11.PRODUCT_ID]
).encode("ascii")


def format_date_time(dt=None):
    """Generate a RFC 7231 / RFC 9110 IMF-fixdate string"""
    if dt is None:
        dt = datetime.datetime.now(datetime.timezone.utc)
    return email.utils.format_datetime(dt, usegmt=True)


class HTTPWrapper:
    _next_id = count()

    def __init__(self, client_id, stream:StreamConnection, log_callback=None):
        self.log_callback = log_callback
        self.client_id = client_id
        self.stream = stream
        self.conn = h11.Connection(h11.SERVER)
        # A unique id for this connection, to include in debugging output
        # (useful for understanding what's going on if there are multiple
        # simultaneous clients).
        self._obj_id = next(HTTPWrapper._next_id)

    async def debug(self, *args):
        msg = [str(x) for x in args]
        msg = ' '.join(msg)
        if self.log_callback is not None:
            await self.log_callback(msg)

    async def send(self, event):
        # The code below doesn't send ConnectionClosed, so we don't bother
        # handling it here either -- it would require that we do something
        # appropriate when 'data' is None.
        assert type(event) is not h11.ConnectionClosed
        data = self.conn.send(event)
        try:
            await self.stream.write(data)
        except BaseException as exc:
            # If the write fails (especially on cancellation),
            # we have no choice but to give it up.
            self.conn.send_failed()
            if isinstance(exc, (ConnectionError, OSError)):
                raise ClientAbortError(f"Client went away: {exc!r}") from exc
            raise

    async def _read_from_peer(self):
        if self.conn.they_are_waiting_for_100_continue:
            await self.debug("Sending 100 Continue")
            go_ahead = h11.InformationalResponse(
                status_code=100, headers=self.basic_headers()
            )
            await self.send(go_ahead)
        try:
            data = await self.stream.read_one()
            await self.debug('[%s] Read %d bytes' % (self.client_id, len(data)))
        except (ConnectionError, OSError) as exc:
            await self.debug('Error reading from peer:', exc)
            # They've stopped listening. Not much we can do about it here.
            data = b""
        self.conn.receive_data(data)

    async def next_event(self):
        while True:
            event = self.conn.next_event()
            await self.debug('[%s] Event: %s' % (self.client_id, type(event).__name__))
            if event is h11.NEED_DATA:
                await self._read_from_peer()
                continue
            return event

    async def shutdown_and_clean_up(self):
        await self.stream.close()

    def basic_headers(self):
        # HTTP requires these headers in all responses (client would do
        # something different here)
        return [
            ("Date", format_date_time().encode("ascii")),
            ("Server", SERVER_IDENT),
        ]


class HTTPServerHandler:
    def __init__(self):
        self._wrapper:HTTPWrapper = None
        self.request:h11.Request = None
        self.request_headers:RequestHeaders = None

    def basic_headers(self):
        return self._wrapper.basic_headers()

    async def _process_request(self, wrapper:HTTPWrapper, request:h11.Request):
        self._wrapper = wrapper
        self.request = request
        self.request_headers = RequestHeaders(request.headers)
        method = request.method.decode("ascii")
        func = getattr(self, f"do_{method}", None)
        if func is None:
            return await self.send_simple_response(405, b"Method Not Allowed\n", extra_headers=[("Allow", self.allowed_methods())])
        await func(request)

    def allowed_methods(self):
        return ", ".join(sorted(x[3:] for x in dir(self) if x.startswith("do_")))

    async def send_simple_response(self, status_code, body=b"", content_type="text/plain; charset=utf-8", extra_headers=None):
        if isinstance(body, str):
            body = body.encode("utf-8")
        headers = self.basic_headers()
        headers.extend([
            ("Content-Type", content_type.encode("ascii")),
            ("Content-Length", str(len(body)).encode("ascii")),
        ])
        if extra_headers is not None:
            headers.extend(extra_headers)
        await self._wrapper.send(h11.Response(status_code=status_code, headers=headers))
        if body and self.request.method != b"HEAD":
            await self._wrapper.send(h11.Data(data=body))
        await self._wrapper.send(h11.EndOfMessage())

    async def send_error(self, status_code, message):
        body = f"<html><body><h1>Error {status_code}</h1><p>{html.escape(message)}</p></body></html>"
        await self.send_simple_response(status_code, body, "text/html; charset=utf-8")

    async def redirect(self, location, status_code=301):
        await self.send_simple_response(status_code, extra_headers=[("Location", location.encode("utf-8"))])


class HTTPServer:
    def __init__(self, client_handler, target:ServerTarget, log_callback=None):
        self.log_callback = log_callback
        self.target = target
        self.client_handler = client_handler
        self.server = TCPServer(target)

        self.clients = {}
        self.id_counter = 0
        self.__main_task = None

    async def debug(self, *args):
        msg = [str(x) for x in args]
        msg = ' '.join(msg)
        if self.log_callback is not None:
            await self.log_callback(msg)

    async def __aenter__(self):
        self.__main_task = asyncio.create_task(self.serve())
        await self.server.started_evt.wait()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.terminate()

    def get_bound_port(self):
        return self.server.get_bound_port()

    async def terminate(self):
        self.server.close()
        tasks = list(self.clients.values())
        self.clients = {}
        if self.__main_task is not None:
            tasks.append(self.__main_task)
            self.__main_task = None
        for task in tasks:
            task.cancel()
        if len(tasks) > 0:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def __drain_request_body(self, wrapper:HTTPWrapper):
        # the handler answered without consuming the whole request body
        while True:
            event = await wrapper.next_event()
            if type(event) is h11.EndOfMessage:
                return True
            if type(event) is not h11.Data:
                return False

    async def __handle_connection(self, client_id, connection:StreamConnection):
        wrapper = HTTPWrapper(client_id, connection, log_callback=self.log_callback)
        handler = self.client_handler()
        await self.debug('Server: New client connected with id %s' % client_id)
        try:
            while True:
                states = wrapper.conn.states
                if states == {h11.CLIENT: h11.DONE, h11.SERVER: h11.DONE}:
                    wrapper.conn.start_next_cycle()
                    continue

                if states == {h11.CLIENT: h11.SEND_BODY, h11.SERVER: h11.DONE}:
                    if await self.__drain_request_body(wrapper) is False:
                        break
                    continue

                if states != {h11.CLIENT: h11.IDLE, h11.SERVER: h11.IDLE}:
                    await self.debug('[%s] Server: Connection state not reusable %s' % (client_id, states))
                    break

                event = await wrapper.next_event()
                if type(event) is h11.ConnectionClosed:
                    break
                if type(event) is not h11.Request:
                    await self.debug('[%s] Server: unexpected event type %s' % (client_id, type(event)))
                    break

                try:
                    await handler._process_request(wrapper, event)
                except ClientAbortError as exc:
                    logger.debug('[%s] %s' % (client_id, exc))
                    break
                except Exception as exc:
                    logger.exception('[%s] Error during response handler' % client_id)
                    if wrapper.conn.our_state is h11.SEND_RESPONSE:
                        await handler.send_error(500, f"Internal Server Error: {exc}")
                        continue
                    break

        except h11.RemoteProtocolError as exc:
            await self.debug('[%s] Protocol error: %s' % (client_id, exc))
            if wrapper.conn.our_state in (h11.IDLE, h11.SEND_RESPONSE):
                handler._wrapper = wrapper
                handler.request = h11.Request(method="GET", target="/", headers=[("Host", "invalid")])
                try:
                    await handler.send_simple_response(exc.error_status_hint, b"Bad Request\n")
                except Exception:
                    pass
        except ClientAbortError as exc:
            logger.debug('[%s] %s' % (client_id, exc))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.debug(traceback.format_exc())
        finally:
            self.clients.pop(client_id, None)
            await wrapper.shutdown_and_clean_up()
            await self.debug('[%s] Server: connection closed' % client_id)

    async def serve(self):
        try:
            async for connection in self.server.serve():
                client_id = self.id_counter
                self.id_counter += 1
                task = asyncio.create_task(self.__handle_connection(client_id, connection))
                self.clients[client_id] = task
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception('HTTP server failed')
            return False, e
        return True, None
