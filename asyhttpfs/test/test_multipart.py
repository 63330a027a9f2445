import asyncio

import pytest

from asyhttpfs.common.exceptions import PipeClosedError
from asyhttpfs.content.multipart import BytePipe, MultipartWriter, MultiRangeProducer, \
    ranges_mime_size, random_boundary
from asyhttpfs.content.ranges import ByteRange
from asyhttpfs.content.resource import MemoryResource


EXPECTED_BODY = (
    b'--B\r\n'
    b'Content-Range: bytes 0-0/10\r\n'
    b'Content-Type: text/plain\r\n'
    b'\r\n'
    b'0'
    b'\r\n--B\r\n'
    b'Content-Range: bytes 2-3/10\r\n'
    b'Content-Type: text/plain\r\n'
    b'\r\n'
    b'23'
    b'\r\n--B--\r\n'
)


async def read_until_eof(source, n=-1):
    data = b''
    while True:
        chunk = await source.read(n)
        if not chunk:
            return data
        data += chunk


def test_random_boundary():
    a = random_boundary()
    assert len(a) == 60
    assert a != random_boundary()


def test_writer_framing():
    mw = MultipartWriter(boundary='B')
    assert mw.content_type() == 'multipart/byteranges; boundary=B'
    first = mw.create_part({'Content-Type': 'a', 'Content-Range': 'b'})
    assert first == b'--B\r\nContent-Range: b\r\nContent-Type: a\r\n\r\n'
    second = mw.create_part({})
    assert second == b'\r\n--B\r\n\r\n'
    assert mw.close() == b'\r\n--B--\r\n'
    assert mw.parts == 2


def test_mime_size_matches_body():
    ranges = [ByteRange(0, 1), ByteRange(2, 2)]
    assert ranges_mime_size(ranges, 'text/plain', 10, 'B') == len(EXPECTED_BODY)


@pytest.mark.asyncio
async def test_producer_body():
    resource = MemoryResource('digits.txt', b'0123456789')
    producer = MultiRangeProducer(resource, [ByteRange(0, 1), ByteRange(2, 2)], 'text/plain', 10, boundary='B', chunk_size=1, pipe_size=1)
    producer.start()
    try:
        body = await read_until_eof(producer, 3)
    finally:
        await producer.aclose()
    assert body == EXPECTED_BODY
    assert producer.encoded_size() == len(body)


@pytest.mark.asyncio
async def test_producer_random_boundary_size():
    data = bytes(range(256)) * 40
    ranges = [ByteRange(5, 1000), ByteRange(9000, 1240), ByteRange(0, 1)]
    producer = MultiRangeProducer(MemoryResource('blob', data), ranges, 'application/octet-stream', len(data), chunk_size=333)
    producer.start()
    try:
        body = await read_until_eof(producer)
    finally:
        await producer.aclose()
    assert len(body) == producer.encoded_size()
    assert body.startswith(('--%s\r\n' % producer.boundary).encode())
    assert body.endswith(('\r\n--%s--\r\n' % producer.boundary).encode())
    assert data[9000:10240] in body


@pytest.mark.asyncio
async def test_producer_error_reaches_reader():
    # the declared size is larger than the data, so the second range cannot be read
    resource = MemoryResource('short', b'0123', size=10)
    producer = MultiRangeProducer(resource, [ByteRange(0, 2), ByteRange(6, 2)], 'text/plain', 10, boundary='B')
    producer.start()
    try:
        with pytest.raises(EOFError):
            await read_until_eof(producer)
    finally:
        await producer.aclose()


@pytest.mark.asyncio
async def test_producer_stops_on_abort():
    data = b'x' * 100000
    producer = MultiRangeProducer(MemoryResource('big', data), [ByteRange(0, 50000), ByteRange(50000, 50000)], 'text/plain', len(data), chunk_size=10, pipe_size=1)
    task = producer.start()
    assert len(await producer.read(5)) > 0
    await producer.aclose()
    assert task.done()


@pytest.mark.asyncio
async def test_pipe_abort_unblocks_writer():
    pipe = BytePipe(1)
    await pipe.write(b'a')
    writer = asyncio.create_task(pipe.write(b'b'))
    await asyncio.sleep(0)
    assert not writer.done()
    pipe.abort()
    with pytest.raises(PipeClosedError):
        await writer
    with pytest.raises(PipeClosedError):
        await pipe.write(b'c')
    with pytest.raises(PipeClosedError):
        await pipe.read()


@pytest.mark.asyncio
async def test_pipe_read_sizes():
    pipe = BytePipe(4)
    await pipe.write(b'hello')
    await pipe.write(b'')
    await pipe.write(b'world')
    await pipe.close()
    assert await pipe.read(2) == b'he'
    assert await pipe.read(10) == b'llo'
    assert await pipe.read() == b'world'
    assert await pipe.read() == b''
    with pytest.raises(PipeClosedError):
        await pipe.write(b'late')


@pytest.mark.asyncio
async def test_pipe_close_with_error():
    pipe = BytePipe(2)
    await pipe.write(b'data')
    await pipe.close(ValueError('boom'))
    assert await pipe.read() == b'data'
    with pytest.raises(ValueError):
        await pipe.read()


@pytest.mark.asyncio
async def test_aclose_keeps_caller_cancellable():
    producer = MultiRangeProducer(MemoryResource('x', b'0123'), [ByteRange(0, 1), ByteRange(2, 1)], 'text/plain', 4)
    release = asyncio.Event()

    async def slow_to_stop():
        while not release.is_set():
            try:
                await release.wait()
            except asyncio.CancelledError:
                continue

    producer.producer_task = asyncio.create_task(slow_to_stop())
    closer = asyncio.create_task(producer.aclose())
    for _ in range(3):
        await asyncio.sleep(0)
    assert not closer.done()

    closer.cancel()
    with pytest.raises(asyncio.CancelledError):
        await closer
    assert closer.cancelled()

    release.set()
    await producer.producer_task
