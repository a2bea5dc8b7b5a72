"""Route lookup over IP routing tables, and static routes read from route files."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional, Union

from .model import (
    DEFAULT_METRIC,
    Device,
    ForwardRoute,
    IPAddress,
    Network,
    Packet,
    RouteEntry,
    RoutingType,
    _as_ip,
    in_same_network,
    is_multicast_ip,
    network_address,
)
from .multicast import correct_route, is_reserved_multicast_address

Reachability = Callable[[IPAddress], bool]

_KIND_TYPES = {
    "STATIC": RoutingType.STATIC,
    "DEFAULT": RoutingType.DEFAULT,
}


class RouteFileError(ValueError):
    """A static route file cannot be read or holds an invalid line."""

    def __init__(self, message: str, source: str = "", line: int = 0) -> None:
        self.source = source
        self.line = line
        if source or line:
            message = f"Invalid line in route file {source} at line {line}: {message}"
        super().__init__(message)


@dataclass
class Match:
    """A routing table entry that matches a destination."""

    entry: RouteEntry
    bits_count: int
    metric: int


@dataclass(frozen=True)
class StaticRoute:
    """One line of a static route file."""

    dest: IPAddress
    mask: IPAddress
    gateway: IPAddress
    metric: int
    interface: int
    line: int = 0


class RoutingTable:
    """The IP routing table of one device."""

    def __init__(self, network: Optional[Network] = None) -> None:
        self.network = network
        self._entries: list[RouteEntry] = []

    def add(
        self,
        dest: Any,
        mask: Any,
        prefix_len: int,
        gateway: Any,
        interface_ips: Iterable[Any],
        interface_ids: Iterable[int],
        metric: int,
        kind: str,
    ) -> RouteEntry:
        """Add an entry and return it."""
        ips = list(interface_ips)
        ids = list(interface_ids)
        if len(ips) != len(ids):
            raise ValueError("interface addresses and ids differ in number")
        entry = RouteEntry(
            network_destination=dest,
            net_mask=mask,
            gateway=gateway,
            interfaces=ips,
            interface_ids=ids,
            prefix_len=prefix_len,
            metric=metric,
            type=_KIND_TYPES.get((kind or "").upper(), RoutingType.STRING),
            kind=kind or "",
        )
        self._entries.append(entry)
        return entry

    def find(self, dest: Any, mask: Any) -> Optional[RouteEntry]:
        """Return the entry with this destination and mask, if any."""
        dest = _as_ip(dest)
        mask = _as_ip(mask)
        for entry in self._entries:
            if entry.network_destination == dest and entry.net_mask == mask:
                return entry
        return None

    def remove_kind(self, kind: str) -> int:
        """Remove every entry of the given kind; return how many went."""
        before = len(self._entries)
        self._entries = [e for e in self._entries if e.kind != kind]
        return before - len(self._entries)

    def gateway_id(self, entry: RouteEntry) -> int:
        """Device id of the entry's gateway, looked up once and remembered."""
        if not entry.gateway_id and entry.gateway is not None and self.network is not None:
            owner = self.network.find_device_by_ip(entry.gateway)
            if owner is not None:
                entry.gateway_id = owner[0]
        return entry.gateway_id

    def __iter__(self) -> Iterator[RouteEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


def _leading_ones(mask: IPAddress) -> int:
    value = int(mask)
    bits = mask.max_prefixlen
    count = 0
    while count < bits and value & (1 << (bits - 1 - count)):
        count += 1
    return count


def _reachable(is_reachable: Optional[Reachability], ip: Optional[IPAddress]) -> bool:
    if is_reachable is None or ip is None:
        return True
    return is_reachable(ip)


def get_match_table(
    table: Iterable[RouteEntry],
    dest: Any,
    static_only: bool = False,
    is_reachable: Optional[Reachability] = None,
) -> list[Match]:
    """Entries matching the destination, longest prefix first, then lowest metric."""
    dest = _as_ip(dest)
    matches: list[Match] = []
    full = 32 if dest.version == 4 else 128
    for entry in table:
        if static_only and entry.type is not RoutingType.STATIC:
            continue
        if entry.network_destination == dest and _reachable(is_reachable, dest):
            matches.append(Match(entry, full, DEFAULT_METRIC))
        elif dest.version == entry.network_destination.version:
            net1 = network_address(dest, entry.net_mask, entry.prefix_len)
            net2 = network_address(entry.network_destination, entry.net_mask, entry.prefix_len)
            if net1 == net2 and _reachable(is_reachable, entry.gateway):
                if dest.version == 4 and entry.net_mask is not None:
                    bits = _leading_ones(entry.net_mask)
                else:
                    bits = entry.prefix_len
                matches.append(Match(entry, bits, entry.metric))
    matches.sort(key=lambda m: (-m.bits_count, m.metric))
    return matches


def _forward(
    table: RoutingTable,
    entry: RouteEntry,
    dest: IPAddress,
    skip_interface: Optional[int] = None,
) -> list[ForwardRoute]:
    routes = []
    for ip, iid in zip(entry.interfaces, entry.interface_ids):
        if skip_interface is not None and iid == skip_interface:
            continue
        routes.append(
            ForwardRoute(
                next_hop=entry.gateway if entry.gateway is not None else dest,
                gateway=ip,
                interface_id=iid,
                next_hop_id=table.gateway_id(entry),
            )
        )
    return routes


def route_unicast(
    table: RoutingTable,
    dest: Any,
    static_only: bool = False,
    is_reachable: Optional[Reachability] = None,
) -> list[ForwardRoute]:
    """Hops for a unicast destination by the best match; empty when none."""
    dest = _as_ip(dest)
    matches = get_match_table(table, dest, static_only, is_reachable)
    if not matches:
        return []
    return _forward(table, matches[0].entry, dest)


def route_multicast(
    table: RoutingTable,
    dest: Any,
    src: Any,
    incoming_interface: int = 0,
    static_only: bool = False,
    is_reachable: Optional[Reachability] = None,
) -> list[ForwardRoute]:
    """Hops for a multicast destination, never back out of the incoming interface."""
    dest = _as_ip(dest)
    src = _as_ip(src)
    matches = get_match_table(table, dest, static_only, is_reachable)
    chosen: Optional[RouteEntry] = None
    if matches:
        if is_reserved_multicast_address(dest):
            for match in matches:
                chosen = correct_route(match.entry, dest, src)
                if chosen is not None:
                    break
        else:
            chosen = matches[0].entry
    if chosen is None:
        return []
    return _forward(table, chosen, dest, incoming_interface)


def route_packet(
    table: RoutingTable,
    packet: Packet,
    incoming_interface: int = 0,
    static_only: bool = False,
    is_reachable: Optional[Reachability] = None,
) -> list[ForwardRoute]:
    """Route a packet by its destination address."""
    data = packet.network
    if is_multicast_ip(data.dest_ip):
        return route_multicast(
            table, data.dest_ip, data.source_ip, incoming_interface, static_only, is_reachable
        )
    return route_unicast(table, data.dest_ip, static_only, is_reachable)


def route_onlink(device: Device, src: Any, dest: Any) -> list[ForwardRoute]:
    """Hops straight to the destination out of every interface on the source's network."""
    dest = _as_ip(dest)
    return [
        ForwardRoute(next_hop=dest, gateway=iface.address, interface_id=iface.id, next_hop_id=0)
        for iface in device.interfaces
        if in_same_network(src, iface.address, iface.subnet_mask, iface.prefix_len)
    ]


def _ip4(word: str, number: int) -> IPAddress:
    try:
        ip = _as_ip(word)
    except ValueError:
        raise RouteFileError(f"{word!r} is not an IP address", line=number) from None
    if ip.version != 4:
        raise RouteFileError(f"{word!r} is not an IPv4 address", line=number)
    return ip


def _expect(words: list[str], pos: int, keyword: str, ordinal: str, number: int) -> None:
    word = words[pos] if pos < len(words) else ""
    if word.lower() != keyword.lower():
        raise RouteFileError(f"{ordinal} word is not {keyword}", line=number)


def _int(word: str, number: int) -> int:
    try:
        return int(word)
    except ValueError:
        raise RouteFileError(f"{word!r} is not a number", line=number) from None


def parse_static_routes(lines: Iterable[str]) -> list[StaticRoute]:
    """Parse lines of the form 'route add D mask M G metric N IF I'."""
    routes = []
    for number, raw in enumerate(lines, start=1):
        text = raw.strip()
        if not text or text.startswith("#"):
            continue
        words = text.split()
        words += [""] * (10 - len(words))
        if words[0].lower() != "route":
            raise RouteFileError("Not start with route", line=number)
        _expect(words, 1, "add", "Second", number)
        dest = _ip4(words[2], number)
        _expect(words, 3, "mask", "Fourth", number)
        mask = _ip4(words[4], number)
        gateway = _ip4(words[5], number)
        _expect(words, 6, "metric", "Seventh", number)
        metric = _int(words[7], number)
        _expect(words, 8, "IF", "Ninth", number)
        interface = _int(words[9], number)
        routes.append(StaticRoute(dest, mask, gateway, metric, interface, number))
    return routes


def apply_static_routes(
    network: Network,
    device_id: int,
    table: RoutingTable,
    routes: Iterable[StaticRoute],
) -> None:
    """Put static routes into a device's table, updating entries already there."""
    device = network.device(device_id)
    for route in routes:
        try:
            iface = device.interface(route.interface)
        except KeyError:
            raise RouteFileError(
                f"device {device_id} has no interface {route.interface}", line=route.line
            ) from None
        entry = table.find(route.dest, route.mask)
        if entry is None:
            table.add(
                route.dest, route.mask, 0, route.gateway,
                [iface.address], [iface.id], route.metric, "STATIC",
            )
            continue
        if iface.id not in entry.interface_ids:
            entry.interfaces.append(iface.address)
            entry.interface_ids.append(iface.id)
        entry.gateway = route.gateway
        entry.metric = route.metric


def configure_static_ip_route(
    network: Network,
    device_id: int,
    table: RoutingTable,
    path: Union[str, Path],
) -> list[StaticRoute]:
    """Read a static route file and apply it to a device's table."""
    try:
        with open(path, encoding="utf-8") as handle:
            lines = handle.readlines()
    except OSError as exc:
        raise RouteFileError(f"Unable to open routing file {path}: {exc}") from exc
    try:
        routes = parse_static_routes(lines)
    except RouteFileError as exc:
        raise RouteFileError(str(exc), str(path), exc.line) from None
    apply_static_routes(network, device_id, table, routes)
    return routes