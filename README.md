# trantor

Building blocks for reactor-style, non-blocking TCP networking. An
`EventLoop` runs in one thread, watches file descriptors through
`Channel` objects, and runs timers and queued functions. Around it are
loop threads and a pool of them, a socket wrapper, an `Acceptor` for
listening sockets, a `Connector` for outgoing connections, send-buffer
nodes, an object pool and a threaded DNS resolver.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Addresses

`trantor.inet_address.InetAddress` holds an IPv4 or IPv6 address and a
port.

```python
from trantor.inet_address import InetAddress

addr = InetAddress("192.168.1.10", 8080)
addr.to_ip_port()        # "192.168.1.10:8080"
addr.is_intranet_ip()    # True
addr.is_loopback_ip()    # False

any_v6 = InetAddress.for_port(9000, False, True)
any_v6.to_ip()           # "::"
```

An IP string that cannot be parsed leaves a zeroed address for which
`is_unspecified()` returns True. `from_sockaddr(family, sockaddr)` builds
an address from a `socket` module tuple, and `sockaddr()` gives one back
for `bind()` or `connect()`. `to_ip_net_endian()` and
`to_ip_port_net_endian()` return the raw bytes in network order.

## Event loop

```python
from trantor.event_loop import EventLoop

loop = EventLoop()
loop.run_after(0.5, lambda: print("half a second later"))
loop.run_after(1.0, loop.quit)
loop.loop()              # blocks until quit() is called
loop.close()
```

A thread owns at most one loop; creating a second one in the same thread
raises `EventLoopError`, as do calls that must happen in the loop's
thread. `get_event_loop_of_current_thread()` returns the calling
thread's loop or None.

- `run_at`, `run_after` and `run_every` add timers (seconds, or a
  `datetime`/`timedelta`) and return a timer id; `invalidate_timer`
  cancels one while the loop runs.
- `queue_in_loop` and `run_in_loop` hand functions to the loop's thread
  from any thread.
- `run_on_quit` registers functions that run after the loop stops, even
  when a callback raised; the exception is re-raised afterwards.
- `move_to_current_thread` hands a loop that is not running to the
  calling thread.
- `EventLoop` is a context manager; leaving the block calls `close()`.

## Channels and polling

`trantor.channel.Channel` watches one file descriptor for a loop. Set
`read_callback`, `write_callback`, `close_callback`, `error_callback` or
`event_callback` (which replaces all the others), then turn events on
with `enable_reading()` / `enable_writing()`. `tie(obj)` keeps a weak
reference and skips callbacks once `obj` is gone. Event bits are the
`Event` flags. `trantor.poller.Poller` is what the loop uses to wait for
them, built on `select.poll` where available and on `selectors`
otherwise.

## Loop threads

```python
from trantor.event_loop_thread import EventLoopThread, EventLoopThreadPool

with EventLoopThread("worker") as worker:
    worker.run()
    worker.loop().queue_in_loop(lambda: print("in the worker thread"))

with EventLoopThreadPool(4, "io") as pool:
    pool.start()
    loop = pool.next_loop()  # round robin over the pool
```

`EventLoopThread.loop()` returns the thread's loop, or None once it has
exited. `EventLoopThreadPool` also offers `get_loop(index)`, `loops()`,
`wait()` and `len(pool)`.

## Sockets, accepting and connecting

`trantor.socket_ops.Socket` owns a TCP socket and has static helpers
such as `create_nonblocking`, `connect`, `get_socket_error`,
`local_addr`, `peer_addr` and `is_self_connect`.

`trantor.acceptor.Acceptor(loop, addr)` binds a listening socket (a port
of 0 picks a free one, reported by `addr()`). After `listen()`, each
accepted non-blocking socket and its peer address go to
`new_connection_callback`; without one, accepted sockets are closed.
`before_listen_sockopt_callback` and `after_accept_sockopt_callback` may
set socket options.

`trantor.connector.Connector(loop, addr, retry)` opens a non-blocking
connection; the connected socket goes to `new_connection_callback` and
failures call `error_callback`. With `retry` set, failed attempts are
repeated after a delay that starts at 500 ms and doubles up to 30 s.
`status()` reports a `Status` value; `stop()` and `restart()` control
the attempt.

## Send buffers

`trantor.buffer_node` has the pieces of data waiting to be sent:
`MemBufferNode` (bytes in memory), `StreamBufferNode` (pulls chunks from
a callback until it returns nothing, then calls it once with None),
`AsyncBufferNode` (data appended while queued) and `FileBufferNode` (a
range of a file read in chunks of at most 16 KiB; a length of 0 means
up to the end). `AsyncStream` is the abstract interface for a pushed
stream.

## Object pool

```python
from trantor.object_pool import ObjectPool

pool = ObjectPool(bytearray)
with pool.acquire() as buf:
    buf += b"data"
len(pool)                # 1 idle object
```

## DNS

```python
from trantor.resolver import new_resolver

resolver = new_resolver(None, 60)
resolver.resolve("localhost", lambda addr: print(addr.to_ip()))
```

Lookups run on a shared thread pool; callbacks run there, or in the
caller's thread when the answer is cached. Results are cached for the
given number of seconds (0 keeps them forever); `Resolver.clear_cache()`
empties the cache. A failed lookup gives `0.0.0.0:0`. `resolve_all`
passes a one-element list.

## What this package does not do

There is no TCP connection object, TCP server or TCP client on top of
these pieces: accepted and connected sockets are handed to your
callbacks as plain `socket.socket` objects, and reading, writing and
queuing of send buffers on them is left to the caller. There is no TLS
support, no idle-connection timing wheel and no command-line program.