# sipcollect

Decode raw Ethernet frames that carry SIP over UDP or TCP on IPv4, and turn
every message that has a `Call-ID` header into a record ready to be stored
in a `sip` table. The first parts of fragmented IP datagrams are kept and
joined to the fragment that completes them, and records are grouped into
multi-row `INSERT` statements.

## Installation

```
pip install .
```

The package has no runtime dependencies. The tests need pytest:

```
pip install .[test]
pytest
```

## Modules

### `sipcollect.headers`

- `extract_header(text, needle)` returns the value of a header line.
  `needle` includes the leading line break and the colon, for example
  `"\nCall-ID:"`. The header matches only at the start of a line, ASCII
  letters are compared without regard to case, up to three spaces after
  the colon are skipped, and the value runs to the end of the line, capped
  at 1020 characters (`MAX_VALUE_LENGTH`). An empty string is returned when
  the header is absent.
- `ascii_only(data)` drops every byte outside 7-bit ASCII from a `bytes`
  value, stops at the first NUL and returns the result as `str`.

### `sipcollect.packet`

- `parse_frame(data)` decodes an Ethernet frame, with or without an
  802.1Q VLAN tag, holding IPv4, into a frozen `Frame` with `src_ip`,
  `dst_ip`, `src_port`, `dst_port`, `protocol`, `identification`,
  `more_fragments`, `fragment_offset`, `length` and `payload`. Ports,
  `length` and `payload` are filled in for TCP (protocol 6) and UDP
  (protocol 17) only. `length` is the payload length worked out from the
  IPv4 total length and may be zero or negative for malformed packets.
  A frame too short for the headers it needs raises `ValueError`.
- `format_timestamp(seconds, microseconds)` formats a capture time in UTC
  as `YYYY-MM-DD HH:MM:SS.uuuuuu`.

### `sipcollect.collector`

- `escape_sql(text)` escapes NUL, line feed, carriage return, backslash,
  both quote characters and Ctrl-Z for use inside a quoted MySQL string
  literal.
- `SipRecord` is one row: `callid`, `datetime`, `src_ip`, `src_port`,
  `dst_ip`, `dst_port` and `content`.
- `build_insert(dbname, records)` builds one
  `INSERT INTO <dbname>.sip (...) VALUES (...), (...); ` statement, with
  the call id and content escaped. An empty batch raises `ValueError`.
- `FragmentStore` holds the first parts of fragmented datagrams keyed by
  IP identification. `add(ident, content, now)` keeps an existing entry
  unchanged, `get(ident)` returns the content or `None`, and
  `expire(now)` drops entries older than ten seconds and returns how many
  it removed. `len()` and `in` work on it.
- `SipCollector(dbname, execute=None, clock=time.time)` ties it together.
  - `handle(data, seconds, microseconds)` processes one captured frame and
    returns the `SipRecord` it completes, or `None` when the frame carries
    no payload, a payload of 2400 bytes or more, a first fragment (which is
    stored), or no `Call-ID` of at least six characters. Frames too short
    to decode raise `ValueError`.
  - When `execute` is given, each record is also added to `pending`; once
    eleven records are pending, they are passed to `execute` as one
    `INSERT` statement. Without `execute`, records are only returned.
  - `flush()` sends whatever is still pending and returns the number of
    records sent (0 if nothing was pending or there is no `execute`).
  - Every hundred frames or so, once more than twenty fragments are held,
    stale fragments are expired using `clock`.
  - A completing fragment whose first part is unknown is logged as a
    warning on the `sipcollect.collector` logger and handled on its own.

## Example

```python
from sipcollect.collector import SipCollector

collector = SipCollector("voip", execute=cursor.execute)
for frame, (sec, usec) in captured_frames:
    record = collector.handle(frame, sec, usec)
    if record is not None:
        print(record.callid, record.src_ip, "->", record.dst_ip)

collector.flush()
```

Here `cursor` is a cursor on any database connection you already have, and
`captured_frames` yields the raw bytes of each frame with its capture time.

## What it does not do

The package does not capture traffic, open network interfaces, apply
capture filters, read a configuration file or connect to a database. It
has no command-line program. You feed it frames from your own capture
source and run the statements it builds on your own connection.