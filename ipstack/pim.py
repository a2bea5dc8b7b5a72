"""PIM multicast groups and their rendezvous points."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from .model import DeviceType, IPAddress, Network, _as_ip


class PimConfigError(ValueError):
    """The PIM group file cannot be read or holds an invalid line."""


@dataclass
class PimGroup:
    """A multicast group as known to one router."""

    group_id: int
    address: IPAddress
    rp: IPAddress
    rp_id: int = 0
    interface_ids: list[int] = field(default_factory=list)

    def add_interface(self, interface_id: int) -> None:
        """Add an outgoing interface to the group, once."""
        if interface_id not in self.interface_ids:
            self.interface_ids.append(interface_id)


@dataclass
class PimState:
    """PIM state of one router."""

    groups: list[PimGroup] = field(default_factory=list)

    def find_group(self, address: Any) -> Optional[PimGroup]:
        """Return the group with the given address, if known."""
        address = _as_ip(address)
        return next((g for g in self.groups if g.address == address), None)

    def create_group(self, address: Any, rp: Any, rp_id: int = 0) -> PimGroup:
        """Add a new group; ids are numbered from 1 in order of creation."""
        group = PimGroup(len(self.groups) + 1, _as_ip(address), _as_ip(rp), rp_id)
        self.groups.append(group)
        return group


def _ip4(text: str, number: int) -> ipaddress.IPv4Address:
    try:
        return ipaddress.IPv4Address(text.strip())
    except ValueError:
        raise PimConfigError(f"line {number}: {text.strip()!r} is not an IPv4 address") from None


def parse_pim_config(lines: Iterable[str]) -> list[tuple[ipaddress.IPv4Address, ipaddress.IPv4Address]]:
    """Parse 'GROUP_ADDR,RP_ADDR,' lines into (group, rendezvous point) pairs."""
    pairs = []
    for number, raw in enumerate(lines, start=1):
        text = raw.strip()
        if not text or text.startswith("#"):
            continue
        fields = text.split(",")
        if len(fields) < 2 or not fields[0].strip() or not fields[1].strip():
            raise PimConfigError(
                f'line {number}: format of PIM_Config file is not correct. '
                f'It must be "GROUP_ADDR,RP_ADDR,"'
            )
        pairs.append((_ip4(fields[0], number), _ip4(fields[1], number)))
    return pairs


def configure_pim(
    network: Network,
    states: dict[int, PimState],
    path: Union[str, Path],
) -> list[PimGroup]:
    """Create each group of the file on every router that runs PIM.

    Returns the groups created, across all routers.
    """
    try:
        with open(path, encoding="utf-8") as handle:
            pairs = parse_pim_config(handle)
    except OSError as exc:
        raise PimConfigError(f"Unable to open PIM config file {path}: {exc}") from exc

    created = []
    for group, rp in pairs:
        owner = network.find_device_by_ip(rp)
        rp_id = owner[0] if owner else 0
        for device in network.devices:
            if device.type is DeviceType.ROUTER and device.ip_config.pim_configured:
                state = states.setdefault(device.id, PimState())
                created.append(state.create_group(group, rp, rp_id))
    return created