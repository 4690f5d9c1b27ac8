import struct

import pytest

from sipcollect.collector import (
    FragmentStore,
    SipCollector,
    SipRecord,
    build_insert,
    escape_sql,
)
from sipcollect.packet import format_timestamp

MESSAGE = (
    b"INVITE sip:bob@example.com SIP/2.0\r\n"
    b"Call-ID: a84b4c76e66710@example.com\r\n"
    b"CSeq: 1 INVITE\r\n\r\n"
)
CALL_ID = "a84b4c76e66710@example.com"
INSERT_HEAD = (
    "INSERT INTO voip.sip (`callid`, `datetime`,   `srcip`, `srcport`, "
    "`dstip`, `dstport`, `content`) VALUES "
)


def make_frame(payload, ident=1, flags_offset=0, proto=17, with_header=True,
               src=(10, 0, 0, 1), dst=(10, 0, 0, 2), sport=5060, dport=5070, vlan=False):
    if vlan:
        eth = b"\x00" * 12 + b"\x81\x00\x00\x01\x08\x00"
    else:
        eth = b"\x00" * 12 + b"\x08\x00"
    if not with_header:
        transport = b""
    elif proto == 17:
        transport = struct.pack("!HHHH", sport, dport, 8 + len(payload), 0)
    else:
        transport = struct.pack("!HHIIBBHHH", sport, dport, 0, 0, 0x50, 0, 0, 0, 0)
    body = transport + payload
    ip = struct.pack("!BBHHHBBH4s4s", 0x45, 0, 20 + len(body), ident, flags_offset,
                     64, proto, 0, bytes(src), bytes(dst))
    return eth + ip + body


def record(callid=CALL_ID, content="body"):
    return SipRecord(callid, "2020-01-01 00:00:00.000000", "10.0.0.1", 5060,
                     "10.0.0.2", 5070, content)


@pytest.mark.parametrize("raw, escaped", [
    ("it's", "it\\'s"),
    ("a\nb", "a\\nb"),
    ("a\rb", "a\\rb"),
    ("\\", "\\\\"),
    ("\x00", "\\0"),
    ('"', '\\"'),
    ("\x1a", "\\Z"),
    ("plain", "plain"),
])
def test_escape_sql(raw, escaped):
    assert escape_sql(raw) == escaped


def test_build_insert_single_row():
    query = build_insert("voip", [record(content="x'y")])
    assert query.startswith(INSERT_HEAD)
    assert query.endswith("; ")
    row = (f"('{CALL_ID}', '2020-01-01 00:00:00.000000', '10.0.0.1', '5060', "
           "'10.0.0.2', '5070', 'x\\'y')")
    assert query == INSERT_HEAD + row + "; "


def test_build_insert_joins_rows():
    query = build_insert("voip", [record(content="one"), record(content="two")])
    body = query[len(INSERT_HEAD):-2]
    assert body.count("), (") == 1
    assert body.index("'one'") < body.index("'two'")


def test_build_insert_empty():
    with pytest.raises(ValueError):
        build_insert("voip", [])


def test_fragment_store_keeps_first_entry():
    store = FragmentStore()
    store.add(7, "first", 0)
    store.add(7, "second", 5)
    assert store.get(7) == "first"
    assert store.get(8) is None
    assert len(store) == 1


def test_fragment_store_expire():
    store = FragmentStore()
    store.add(1, "old", 0)
    store.add(2, "edge", 10)
    store.add(3, "new", 15)
    assert store.expire(20) == 1
    assert 1 not in store
    assert store.get(2) == "edge"
    assert store.get(3) == "new"


def test_handle_udp_message():
    collector = SipCollector("voip")
    result = collector.handle(make_frame(MESSAGE), 1_600_000_000, 42)
    assert result is not None
    assert result.callid == CALL_ID
    assert result.src_ip == "10.0.0.1"
    assert result.dst_ip == "10.0.0.2"
    assert (result.src_port, result.dst_port) == (5060, 5070)
    assert result.content == MESSAGE.decode()
    assert result.datetime == format_timestamp(1_600_000_000, 42)
    assert collector.pending == []


def test_handle_tcp_and_vlan():
    collector = SipCollector("voip")
    result = collector.handle(make_frame(MESSAGE, proto=6, vlan=True), 0, 0)
    assert result.callid == CALL_ID
    assert result.content == MESSAGE.decode()


def test_short_or_missing_call_id_is_ignored():
    collector = SipCollector("voip")
    short = b"OPTIONS sip:a SIP/2.0\r\nCall-ID: abcde\r\n\r\n"
    assert collector.handle(make_frame(short), 0, 0) is None
    assert collector.handle(make_frame(b"hello there\r\n"), 0, 0) is None


def test_non_ascii_bytes_dropped():
    collector = SipCollector("voip")
    payload = MESSAGE.replace(b"CSeq", b"C\xe9Seq")
    result = collector.handle(make_frame(payload), 0, 0)
    assert result.content == MESSAGE.decode()


def test_fragment_reassembly():
    collector = SipCollector("voip", clock=lambda: 100.0)
    first, rest = MESSAGE[:30], MESSAGE[30:]
    assert collector.handle(make_frame(first, ident=9, flags_offset=0x2000), 0, 0) is None
    assert collector.fragments.get(9) == first.decode()
    result = collector.handle(make_frame(rest, ident=9, flags_offset=4, with_header=False), 0, 0)
    assert result.callid == CALL_ID
    assert result.content == MESSAGE.decode()


def test_fragment_without_first_part():
    collector = SipCollector("voip")
    rest = MESSAGE[10:]
    result = collector.handle(make_frame(rest, ident=3, flags_offset=4, with_header=False), 0, 0)
    assert result.content == rest.decode()


def test_flush():
    sent = []
    collector = SipCollector("voip", execute=sent.append)
    assert collector.flush() == 0
    assert sent == []
    collector.handle(make_frame(MESSAGE), 0, 0)
    collector.handle(make_frame(MESSAGE), 0, 0)
    assert collector.flush() == 2
    assert sent == [build_insert("voip", [collector_record for collector_record in
                                          [SipCollector("voip").handle(make_frame(MESSAGE), 0, 0)] * 2])]
    assert collector.pending == []


def test_execute_error_propagates():
    def fail(query):
        raise RuntimeError("database gone")

    collector = SipCollector("voip", execute=fail)
    for _ in range(10):
        collector.handle(make_frame(MESSAGE), 0, 0)
    with pytest.raises(RuntimeError):
        collector.handle(make_frame(MESSAGE), 0, 0)
    assert len(collector.pending) == 11


def test_stale_fragments_expire():
    now = [0.0]
    collector = SipCollector("voip", clock=lambda: now[0])
    for ident in range(21):
        collector.handle(make_frame(b"part", ident=ident, flags_offset=0x2000), 0, 0)
    assert len(collector.fragments) == 21
    now[0] = 100.0
    for _ in range(79):
        collector.handle(make_frame(b"noise"), 0, 0)
    assert len(collector.fragments) == 21
    collector.handle(make_frame(b"noise"), 0, 0)
    assert len(collector.fragments) == 0


def test_few_fragments_not_expired():
    now = [0.0]
    collector = SipCollector("voip", clock=lambda: now[0])
    for ident in range(5):
        collector.handle(make_frame(b"part", ident=ident, flags_offset=0x2000), 0, 0)
    now[0] = 100.0
    for _ in range(200):
        collector.handle(make_frame(b"noise"), 0, 0)
    assert len(collector.fragments) == 5


def test_short_frame_raises():
    with pytest.raises(ValueError):
        SipCollector("voip").handle(b"\x00" * 10, 0, 0)