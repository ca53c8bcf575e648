# vara

A Python client for the VARA HF and VARA FM modems. It talks to the modem
program over its TCP command port (default 8300) and its data port (default
8301). With it you can dial outbound links, accept inbound ones and exchange
payload data over the air. It has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the test suite:

```
pip install .[test]
pytest
```

## Connecting to the modem

```python
from vara.modem import Modem, ModemConfig

config = ModemConfig(host="localhost", cmd_port=8300, data_port=8301)
with Modem("varahf", "N0CALL", config) as modem:
    print(modem.version())
```

An empty or zero field in `ModemConfig` takes its default: host `localhost`,
command port 8300 and data port 8301. The scheme is `varahf` or `varafm`.
When it is created, `Modem` opens both TCP connections and sends the modem its
setup commands (`PUBLIC ON`, `CWID ON` for VARA HF only, `COMPRESSION TEXT`,
`MYCALL <call>` and `LISTEN OFF`). After that it reads status lines in a
background thread. If nothing arrives from the modem for two minutes, the
modem is treated as gone and closed.

Other `Modem` methods:

- `ping()` returns true while the modem is open.
- `idle()` returns true when no link is connecting or connected.
- `busy()` returns true when the modem reports that the channel is busy.
- `set_bandwidth(bw)` sets the default bandwidth. It must be one of
  `vara.modem.bandwidths()` (`"500"`, `"2300"`, `"2750"`), otherwise
  `ValueError` is raised.
- `disconnect()` closes the active link gracefully and blocks until it is down.
- `abort()` drops the link at once.
- `close()` closes the TCP connections. It does not send `DISCONNECT`, so call
  `disconnect()` or close the connection first for a graceful end of the link.

## Dialing

```python
from vara.url import parse_url

url = parse_url("varahf:///W1AW?bw=2300")
with modem.dial_url(url) as conn:
    conn.write(b"hello\r")
    conn.flush()
    reply = conn.read(1024)
```

`dial_url` also takes the URL as a string. The optional `bw` parameter sets
the bandwidth for this link only, and the default is restored when the link
drops. With VARA HF, `p2p=true` selects a peer-to-peer session instead of a
Winlink session. A URL whose scheme does not match the modem's raises
`vara.errors.UnsupportedSchemeError`. If the remote station does not answer,
`TimeoutError` is raised.

Pass a `threading.Event` as `cancel` to be able to stop a dial. When the event
is set, the modem is told to disconnect and the dial raises `InterruptedError`,
unless the link came up anyway.

If a busy function has been set with `Modem.set_busy_func` and the channel is
busy, the dialer calls that function before it connects. The function gets an
event that is set once the channel clears. If it returns true, the dial is
aborted with `vara.errors.VaraError`.

## Using a connection

`VaraConn` (in `vara.conn`) is the connection that `dial_url` and `accept`
return.

- `read(size)` returns up to `size` bytes. An empty result means the link is
  closed.
- `write(data)` sends `data`. It blocks while the modem's TX buffer is much
  larger than the payload. When the link is not connected it raises
  `BrokenPipeError`.
- `flush()` blocks until the modem's TX buffer is empty.
- `tx_buffer_len()` returns the bytes that are queued or on their way to the
  modem.
- `local_addr()` and `remote_addr()` return `vara.addr.Addr` values that hold
  call signs.
- `settimeout(t)` sets the timeout on the data socket.
- `close()` disconnects gracefully. If the modem does not confirm within 60
  seconds, the link is aborted and `TimeoutError` is raised.

## Listening

```python
with modem.listen() as listener:
    conn = listener.accept()
    print("connected from", conn.remote_addr())
```

`accept(timeout=None)` raises `TimeoutError` when the timeout runs out,
`vara.errors.ListenerClosedError` after the listener has been closed, and
`vara.errors.ModemClosedError` when the modem goes away. An inbound link that
arrives while no one is waiting in `accept` is disconnected.

## PTT

To key a transceiver, pass `Modem.set_ptt` an object that has a `set_ptt(on)`
method (see `vara.modem.PTTController`). Without one, PTT requests from the
modem are ignored, and VOX may still work.

## Errors

All errors raised by the package itself derive from `vara.errors.VaraError`.
`ModemClosedError` is also a `ConnectionError`, and `UnsupportedSchemeError`
is also a `ValueError`.

## Debugging

Set the environment variable `VARA_DEBUG=1` to write trace lines to stderr.
They cover the commands sent and received and the state of connections.

## What this package does not do

It is a library only. It has no command-line program, and it does not run or
control the VARA modem program. That program must already be running and
reachable on its TCP ports.