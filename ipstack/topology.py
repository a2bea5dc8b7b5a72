"""Discovery of the public address that hosts are seen with."""

from __future__ import annotations

import logging
from typing import Optional

from .model import DeviceType, InterfaceType, IPAddress, Network

log = logging.getLogger(__name__)


def _first_wan_interface(network: Network, device_id: int) -> Optional[int]:
    for iface in network.device(device_id).interfaces:
        if iface.interface_type is InterfaceType.WAN_ROUTER:
            return iface.id
    return None


def find_connected_wan_router(
    network: Network,
    device_id: int,
    interface_id: int,
    visited: set[tuple[int, int]],
) -> Optional[tuple[int, int]]:
    """Follow links from an interface to the first router and return its WAN interface.

    Non-router devices on the way are crossed through their other interfaces.
    Returns (router id, WAN interface id), or None.
    """
    if (device_id, interface_id) in visited:
        return None
    visited.add((device_id, interface_id))

    link = network.device(device_id).interface(interface_id).link
    if not link or not link[0] or not link[1]:
        return None
    peer_id, peer_if = link
    peer = network.device(peer_id)

    if peer.type is DeviceType.ROUTER:
        wan = _first_wan_interface(network, peer_id)
        return (peer_id, wan) if wan else None

    for iface in peer.interfaces:
        if iface.id == peer_if:
            continue
        found = find_connected_wan_router(network, peer_id, iface.id, visited)
        if found:
            return found
    return None


def set_public_ip(network: Network, device_id: int) -> dict[int, IPAddress]:
    """Set the public address of each interface of a host.

    Returns the addresses that were set, keyed by interface id.
    """
    device = network.device(device_id)
    assigned: dict[int, IPAddress] = {}
    if device.type is not DeviceType.HOST:
        return assigned

    for iface in device.interfaces:
        found = find_connected_wan_router(network, device_id, iface.id, set())
        if found is None and iface.default_gateway is not None:
            owner = network.find_device_by_ip(iface.default_gateway)
            if owner is not None:
                wan = _first_wan_interface(network, owner[0])
                if wan:
                    found = (owner[0], wan)
        if found is None:
            continue
        router_id, wan_id = found
        iface.public_ip = network.device(router_id).interface(wan_id).address
        assigned[iface.id] = iface.public_ip
        log.info(
            "Public IP of device %d Interface %d is %s", device_id, iface.id, iface.public_ip
        )
    return assigned