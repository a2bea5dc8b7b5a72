"""Address translation at the network layer.

A packet leaving a private network is redirected to a gateway or to the
public address of its destination. The original destination is kept
underneath, and it is put back when the packet reaches the device that did
the redirecting.
"""

from __future__ import annotations

import dataclasses
from typing import Optional

from .model import (
    IPAddress,
    Network,
    Packet,
    is_broadcast_ip,
    is_multicast_ip,
    network_address,
)


def _push_dest(packet: Packet, ip: IPAddress) -> None:
    old = packet.network
    packet.network = dataclasses.replace(old, dest_ip=ip, previous=old)


def _pop_dest(packet: Packet) -> bool:
    current = packet.network
    below = current.previous
    if below is None:
        return False
    packet.network = dataclasses.replace(
        current, dest_ip=below.dest_ip, previous=below.previous
    )
    return True


def _first_public_ip(network: Network, device_id: int) -> Optional[IPAddress]:
    for iface in network.device(device_id).interfaces:
        if iface.public_ip is not None:
            return iface.public_ip
    return None


def nat_network_out(network: Network, device_id: int, packet: Packet) -> Optional[IPAddress]:
    """Redirect an outgoing unicast packet that leaves the device's networks.

    Returns the address the packet now goes to, or None if it was left alone.
    """
    dest = packet.network.dest_ip
    targets = packet.destinations
    if len(targets) > 1:
        return None  # broadcast or multicast
    if not targets or targets[0] == 0:
        return None  # broadcast
    if dest is None or is_multicast_ip(dest):
        return None

    device = network.device(device_id)
    for iface in device.interfaces:
        ip = iface.address
        if ip is None or ip.version != dest.version:
            continue
        own = network_address(ip, iface.subnet_mask, iface.prefix_len)
        theirs = network_address(dest, iface.subnet_mask, iface.prefix_len)
        if own == theirs:
            return None  # destination is on a directly attached network

    gateway = next(
        (
            iface.default_gateway
            for iface in device.interfaces
            if iface.address is not None and iface.default_gateway is not None
        ),
        None,
    )
    if gateway is not None:
        _push_dest(packet, gateway)
        return gateway

    public = _first_public_ip(network, targets[0])
    if public is None:
        return None
    if public == dest:
        return None  # already addressed to the public address
    if device.owns_ip(public):
        return None  # this device is the destination's public face
    _push_dest(packet, public)
    return public


def nat_network_in(network: Network, device_id: int, packet: Packet) -> bool:
    """Undo a redirect on an incoming packet when this device is its target.

    Returns whether the original destination was restored.
    """
    targets = packet.destinations
    if len(targets) > 1:
        return False  # broadcast or multicast

    if targets and targets[0] == device_id:
        return _pop_dest(packet)

    dest = packet.network.dest_ip
    if is_broadcast_ip(dest) or is_multicast_ip(dest):
        return False

    if dest is not None and network.device(device_id).owns_ip(dest):
        return _pop_dest(packet)
    return False