"""Collection of SIP messages from captured frames into batched SQL inserts."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from .headers import ascii_only, extract_header
from .packet import format_timestamp, parse_frame

log = logging.getLogger(__name__)

CALL_ID_HEADER = "\nCall-ID:"
MIN_CALL_ID_LENGTH = 6
MAX_PAYLOAD_LENGTH = 2400
BATCH_SIZE = 11
FRAGMENT_MAX_AGE = 10
EXPIRE_EVERY = 100
EXPIRE_MIN_ENTRIES = 20

_ESCAPES = {
    "\x00": "\\0",
    "\n": "\\n",
    "\r": "\\r",
    "\\": "\\\\",
    "'": "\\'",
    '"': '\\"',
    "\x1a": "\\Z",
}


def escape_sql(text: str) -> str:
    """Escape ``text`` for use inside a quoted MySQL string literal."""
    return "".join(_ESCAPES.get(char, char) for char in text)


@dataclass(frozen=True)
class SipRecord:
    """One SIP message ready to be stored."""

    callid: str
    datetime: str
    src_ip: str
    src_port: int
    dst_ip: str
    dst_port: int
    content: str

    def _row(self) -> str:
        values = (
            escape_sql(self.callid),
            self.datetime,
            self.src_ip,
            str(self.src_port),
            self.dst_ip,
            str(self.dst_port),
            escape_sql(self.content),
        )
        return "(" + ", ".join(f"'{value}'" for value in values) + ")"


def build_insert(dbname: str, records: Iterable[SipRecord]) -> str:
    """Build one multi-row INSERT statement for the ``sip`` table of ``dbname``.

    Raises ValueError when there are no records.
    """
    rows = [record._row() for record in records]
    if not rows:
        raise ValueError("no records to insert")
    return (
        f"INSERT INTO {dbname}.sip (`callid`, `datetime`,   `srcip`, `srcport`, "
        "`dstip`, `dstport`, `content`) VALUES "
        + ", ".join(rows)
        + "; "
    )


@dataclass
class _Fragment:
    content: str
    added: float


class FragmentStore:
    """First parts of fragmented messages, keyed by IP identification."""

    def __init__(self) -> None:
        self._entries: dict[int, _Fragment] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ident: object) -> bool:
        return ident in self._entries

    def add(self, ident: int, content: str, now: float) -> None:
        """Remember ``content`` for ``ident``; an existing entry is kept as is."""
        self._entries.setdefault(ident, _Fragment(content, now))

    def get(self, ident: int) -> str | None:
        """Return the stored content for ``ident``, or None if there is none."""
        entry = self._entries.get(ident)
        return entry.content if entry is not None else None

    def expire(self, now: float) -> int:
        """Drop entries older than the maximum age and return how many went."""
        stale = [
            ident for ident, entry in self._entries.items()
            if now - entry.added > FRAGMENT_MAX_AGE
        ]
        for ident in stale:
            del self._entries[ident]
        return len(stale)


@dataclass
class SipCollector:
    """Turn captured frames into SIP records and send them in batches.

    ``execute`` receives each INSERT statement; without it records are only
    returned from :meth:`handle` and never batched.
    """

    dbname: str
    execute: Callable[[str], object] | None = None
    clock: Callable[[], float] = time.time
    fragments: FragmentStore = field(default_factory=FragmentStore)
    pending: list[SipRecord] = field(default_factory=list)
    _since_expiry: int = field(default=0, repr=False)

    def _maintain(self) -> None:
        self._since_expiry += 1
        if self._since_expiry > EXPIRE_EVERY and len(self.fragments) > EXPIRE_MIN_ENTRIES:
            self.fragments.expire(self.clock())
            self._since_expiry = 0

    def handle(self, data: bytes, seconds: int, microseconds: int) -> SipRecord | None:
        """Process one captured frame and return the SIP record it completes, if any.

        Raises ValueError for frames too short to decode.
        """
        self._maintain()
        frame = parse_frame(data)
        length = frame.length
        if not 0 < length < MAX_PAYLOAD_LENGTH:
            return None

        if frame.more_fragments:
            chunk = frame.payload[:length].split(b"\x00", 1)[0]
            self.fragments.add(frame.identification, chunk.decode("latin-1"), self.clock())
            return None

        if frame.fragment_offset > 0:
            content = ascii_only(frame.payload[:length + 8])
            earlier = self.fragments.get(frame.identification)
            if earlier is None:
                log.warning(
                    "no earlier fragment for ip identification %d "
                    "(flags offset %d, protocol %d, length %d)",
                    frame.identification, frame.fragment_offset, frame.protocol, length,
                )
                earlier = ""
            content = earlier + content
        else:
            content = ascii_only(frame.payload[:length])

        callid = extract_header(content, CALL_ID_HEADER)
        if len(callid) < MIN_CALL_ID_LENGTH:
            return None

        record = SipRecord(
            callid=callid,
            datetime=format_timestamp(seconds, microseconds),
            src_ip=frame.src_ip,
            src_port=frame.src_port,
            dst_ip=frame.dst_ip,
            dst_port=frame.dst_port,
            content=content,
        )
        if self.execute is not None:
            self.pending.append(record)
            if len(self.pending) >= BATCH_SIZE:
                self.flush()
        return record

    def flush(self) -> int:
        """Send all pending records in one statement and return how many were sent."""
        if not self.pending or self.execute is None:
            return 0
        query = build_insert(self.dbname, self.pending)
        self.execute(query)
        sent = len(self.pending)
        self.pending.clear()
        return sent