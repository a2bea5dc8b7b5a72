"""Multicast decisions of the IP layer."""

from __future__ import annotations

import dataclasses
import ipaddress
from typing import Any, Callable, Optional

from .model import (
    Action,
    DeviceType,
    IpProtocol,
    IPAddress,
    Network,
    Packet,
    RouteEntry,
    _as_ip,
    in_same_network,
)

ALL_IN_SUBNET = ipaddress.IPv4Address("224.0.0.1")
ALL_ROUTER_IN_SUBNET = ipaddress.IPv4Address("224.0.0.2")
ALL_SPF_ROUTERS = ipaddress.IPv4Address("224.0.0.5")
ALL_D_ROUTERS = ipaddress.IPv4Address("224.0.0.6")
ALL_PIM_ROUTER = ipaddress.IPv4Address("224.0.0.13")

_RESERVED = frozenset(
    {ALL_IN_SUBNET, ALL_PIM_ROUTER, ALL_ROUTER_IN_SUBNET, ALL_SPF_ROUTERS, ALL_D_ROUTERS}
)

HostLookup = Callable[[int, IPAddress, Packet], Action]


def is_reserved_multicast_address(ip: Any) -> bool:
    """Whether the address is one of the well-known link-local groups."""
    return _as_ip(ip) in _RESERVED


def is_ospf_packet(packet: Packet) -> bool:
    """Whether the packet goes to the OSPF router groups."""
    return packet.network.dest_ip in (ALL_SPF_ROUTERS, ALL_D_ROUTERS)


def check_ip_in_multicastgroup(
    network: Network,
    ip: Any,
    device_id: int,
    packet: Packet,
    host_lookup: HostLookup,
) -> Action:
    """Decide what a device does with a multicast packet.

    host_lookup answers for hosts, from their group membership.
    """
    kind = network.device(device_id).type
    protocol = packet.network.ip_protocol

    if kind is DeviceType.ROUTER and is_ospf_packet(packet):
        return Action.MOVEUP
    if protocol == IpProtocol.IGMP:
        return Action.MOVEUP
    if protocol == IpProtocol.PIM:
        if kind is DeviceType.HOST:
            return Action.DROP
        if kind is DeviceType.ROUTER:
            return Action.MOVEUP

    if kind is DeviceType.ROUTER:
        return Action.REROUTE
    if kind is DeviceType.HOST:
        return host_lookup(device_id, _as_ip(ip), packet)
    if kind is DeviceType.L3_SWITCH:
        return Action.REROUTE
    return Action.DROP


def correct_route(entry: RouteEntry, dest: Any, src: Any) -> Optional[RouteEntry]:
    """Return the route to use for a reserved group, or None if it does not apply.

    For the all-hosts group only the entry for that group qualifies, narrowed
    to the interfaces on the sender's subnet.
    """
    dest = _as_ip(dest)
    if dest != ALL_IN_SUBNET:
        return entry
    if entry.network_destination != dest:
        return None

    pairs = [
        (ip, iid)
        for ip, iid in zip(entry.interfaces, entry.interface_ids)
        if in_same_network(src, ip, entry.net_mask)
    ]
    if not pairs:
        return None
    return dataclasses.replace(
        entry,
        interfaces=[ip for ip, _ in pairs],
        interface_ids=[iid for _, iid in pairs],
    )