"""Decoding of captured Ethernet frames carrying IPv4 TCP or UDP traffic."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from datetime import datetime, timezone

IPPROTO_TCP = 6
IPPROTO_UDP = 17

_ETHERNET_HEADER_LEN = 14
_VLAN_ETHERNET_HEADER_LEN = 18
_VLAN_TAG = b"\x81\x00"
_IPV4_HEADER = struct.Struct("!BBHHHBBH4s4s")
_PORTS = struct.Struct("!HH")
_UDP_HEADER_LEN = 8
_MORE_FRAGMENTS = 0x2000
_OFFSET_MASK = 0x1FFF


@dataclass(frozen=True)
class Frame:
    """The fields of one captured frame that matter for collecting SIP.

    ``length`` is the payload length worked out from the IPv4 total length:
    the transport header (TCP data offset, or 8 bytes for UDP) is taken off,
    and for UDP always 8 bytes, also on later fragments. It may be zero or
    negative for malformed packets. ``payload`` holds every captured byte
    from the start of the transport payload to the end of the frame; on
    fragments after the first no transport header is skipped.
    """

    src_ip: str
    dst_ip: str
    src_port: int
    dst_port: int
    protocol: int
    identification: int
    more_fragments: bool
    fragment_offset: int
    length: int
    payload: bytes


def _need(data: bytes, end: int, what: str) -> None:
    if len(data) < end:
        raise ValueError(f"frame too short for {what}: {len(data)} < {end} bytes")


def parse_frame(data: bytes) -> Frame:
    """Decode an Ethernet frame (optionally VLAN tagged) holding IPv4.

    Raises ValueError when the frame is too short for the headers it needs.
    """
    data = bytes(data)
    _need(data, _ETHERNET_HEADER_LEN, "the Ethernet header")
    if data[12:14] == _VLAN_TAG:
        ip_start = _VLAN_ETHERNET_HEADER_LEN
    else:
        ip_start = _ETHERNET_HEADER_LEN

    _need(data, ip_start + _IPV4_HEADER.size, "the IPv4 header")
    (ver_ihl, _tos, total_length, identification, flags_offset,
     _ttl, protocol, _checksum, src, dst) = _IPV4_HEADER.unpack_from(data, ip_start)

    ip_header_len = (ver_ihl & 0x0F) * 4
    fragment_offset = flags_offset & _OFFSET_MASK
    transport = ip_start + ip_header_len

    src_port = dst_port = 0
    length = 0
    payload = b""

    if protocol in (IPPROTO_TCP, IPPROTO_UDP):
        _need(data, transport + _PORTS.size, "the transport ports")
        src_port, dst_port = _PORTS.unpack_from(data, transport)
        if protocol == IPPROTO_TCP:
            if fragment_offset == 0:
                _need(data, transport + 13, "the TCP header")
                header_len = (data[transport + 12] >> 4) * 4
            else:
                header_len = 0
            length = total_length - ip_header_len - header_len
        else:
            header_len = _UDP_HEADER_LEN if fragment_offset == 0 else 0
            length = total_length - ip_header_len - _UDP_HEADER_LEN
        payload = data[transport + header_len:]

    return Frame(
        src_ip=".".join(str(byte) for byte in src),
        dst_ip=".".join(str(byte) for byte in dst),
        src_port=src_port,
        dst_port=dst_port,
        protocol=protocol,
        identification=identification,
        more_fragments=bool(flags_offset & _MORE_FRAGMENTS),
        fragment_offset=fragment_offset,
        length=length,
        payload=payload,
    )


def format_timestamp(seconds: int, microseconds: int) -> str:
    """Format a capture time in UTC as ``YYYY-MM-DD HH:MM:SS.uuuuuu``."""
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return f"{moment.strftime('%Y-%m-%d %H:%M:%S')}.{microseconds:06d}"