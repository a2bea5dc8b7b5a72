"""Core data model of the IP layer: devices, packets, routes and addresses."""

from __future__ import annotations

import copy
import ipaddress
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

DEFAULT_METRIC = 999
ONLINK_METRIC = 300
MULTICAST_METRIC = 306
IPV4_HEADER_SIZE = 20
PROTOCOL_VPN = 1
VPN_METRIC = 200

_LIMITED_BROADCAST = ipaddress.IPv4Address("255.255.255.255")


def _as_ip(value: Any) -> Optional[IPAddress]:
    if value is None:
        return None
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return value
    return ipaddress.ip_address(value)


class RoutingType(IntEnum):
    """How a routing table entry came into being."""

    STRING = 0
    DEFAULT = 1
    STATIC = 2


class ControlPacket(IntEnum):
    """IP control packet types, as offsets within the IP protocol's range."""

    ICMP_DST_UNREACHABLE = 10
    ICMP_ECHO_REQUEST = 11
    ICMP_ECHO_REPLY = 12
    ROUTER_ADVERTISEMENT = 13
    VPN = 20
    IGMP_QUERY = 30
    IGMP_REPORT = 31
    IGMP_LEAVE = 32
    PIM_HELLO = 40
    PIM_REGISTER = 41
    PIM_REGISTER_STOP = 42
    PIM_JOIN_PRUNE = 43
    PIM_BOOTSTRAP = 44
    PIM_ASSERT = 45
    PIM_GRAFT = 46
    PIM_GRAFT_ACK = 47
    PIM_CAND_RP_ADVER = 48


class SubEvent(IntEnum):
    """IP timer sub-events, as offsets within the IP protocol's range."""

    ICMP_POLL = 1
    ADVERTISE_ROUTER = 2
    IGMP_UNSOLICITED_REPORT = 3
    IGMP_SEND_STARTUP_QUERY = 4
    IGMP_SEND_QUERY = 5
    IGMP_OTHER_QUERIER_PRESENT_TIMER = 6
    IGMP_DELAY_TIMER = 7
    IGMP_GROUP_MEMBERSHIP_TIMER = 8
    PIM_SEND_HELLO = 9
    PIM_NEIGHBOR_TIMEOUT = 10
    PIM_JT = 11
    PIM_ET = 12
    IP_INIT_TABLE = 13
    ICMP_SEND_ECHO = 14


class GatewayState(IntEnum):
    UP = 0
    DOWN = 1
    NOTIFICATION_PENDING = 2
    CLEARANCE_PENDING = 3


class VpnState(IntEnum):
    DISABLE = 0
    SERVER = 1
    CLIENT = 2


class Action(IntEnum):
    """What the IP layer does with an incoming packet."""

    DROP = 0
    MOVEUP = 1
    REROUTE = 2


class IpProtocol(IntEnum):
    """Protocol numbers carried in the IP header."""

    ICMP = 1
    IGMP = 2
    TCP = 6
    UDP = 17
    DSR = 48
    PIM = 103


class DeviceType(Enum):
    HOST = "host"
    ROUTER = "router"
    L3_SWITCH = "l3_switch"
    SWITCH = "switch"
    ACCESS_POINT = "access_point"


class InterfaceType(Enum):
    ETHERNET = "ethernet"
    WIRELESS = "wireless"
    WAN_ROUTER = "wan_router"


class EventType(Enum):
    NETWORK_OUT = "network_out"
    NETWORK_IN = "network_in"
    TRANSPORT_IN = "transport_in"
    MAC_OUT = "mac_out"
    TIMER = "timer"


@dataclass
class Interface:
    """One network interface of a device. Ids start at 1."""

    id: int
    address: Optional[IPAddress] = None
    subnet_mask: Optional[IPAddress] = None
    prefix_len: int = 0
    default_gateway: Optional[IPAddress] = None
    interface_type: InterfaceType = InterfaceType.ETHERNET
    public_ip: Optional[IPAddress] = None
    link: Optional[tuple[int, int]] = None
    local_protocol: int = 0
    protocol_version: int = 4

    def __post_init__(self) -> None:
        self.address = _as_ip(self.address)
        self.subnet_mask = _as_ip(self.subnet_mask)
        self.default_gateway = _as_ip(self.default_gateway)
        self.public_ip = _as_ip(self.public_ip)


@dataclass
class DeviceIpConfig:
    """Per-device IP settings."""

    static_ip_table_file: str = ""
    firewall_configured: bool = False
    firewall_config: Optional[str] = None
    icmp: bool = False
    router_advertisement: bool = False
    router_adver_min_interval: int = 0
    router_adver_max_interval: int = 0
    router_adver_lifetime: int = 0
    icmp_polling_time: int = 0
    gateway_ips: list[IPAddress] = field(default_factory=list)
    gateway_ids: list[int] = field(default_factory=list)
    gateway_states: list[GatewayState] = field(default_factory=list)
    gateway_interfaces: list[int] = field(default_factory=list)
    vpn_status: VpnState = VpnState.DISABLE
    server_ip: Optional[IPAddress] = None
    ip_pool_start: Optional[IPAddress] = None
    ip_pool_end: Optional[IPAddress] = None
    ip_pool_mask: Optional[IPAddress] = None
    igmp_configured: bool = False
    pim_configured: bool = False


@dataclass
class Device:
    """A node of the simulated network. Ids start at 1."""

    id: int
    type: DeviceType
    interfaces: list[Interface] = field(default_factory=list)
    name: str = ""
    config_id: int = 0
    has_network_layer: bool = True
    ip_config: DeviceIpConfig = field(default_factory=DeviceIpConfig)

    def __post_init__(self) -> None:
        if not self.name:
            self.name = f"Device_{self.id}"
        if not self.config_id:
            self.config_id = self.id

    def interface(self, interface_id: int) -> Interface:
        """Return the interface with the given id."""
        for iface in self.interfaces:
            if iface.id == interface_id:
                return iface
        raise KeyError(f"device {self.id} has no interface {interface_id}")

    def owns_ip(self, ip: Any) -> bool:
        """Whether one of this device's interfaces carries the address."""
        ip = _as_ip(ip)
        return any(iface.address == ip for iface in self.interfaces)


@dataclass
class Network:
    """All devices of a simulation."""

    devices: list[Device] = field(default_factory=list)

    def device(self, device_id: int) -> Device:
        """Return the device with the given id."""
        for dev in self.devices:
            if dev.id == device_id:
                return dev
        raise KeyError(f"no device {device_id}")

    def find_device_by_ip(self, ip: Any) -> Optional[tuple[int, int]]:
        """Return (device id, interface id) of the address's owner, or None."""
        ip = _as_ip(ip)
        if ip is None:
            return None
        for dev in self.devices:
            for iface in dev.interfaces:
                if iface.address == ip:
                    return dev.id, iface.id
        return None


@dataclass
class NetworkData:
    """The network-layer part of a packet."""

    source_ip: Optional[IPAddress] = None
    dest_ip: Optional[IPAddress] = None
    gateway_ip: Optional[IPAddress] = None
    next_hop_ip: Optional[IPAddress] = None
    ttl: int = 255
    ip_protocol: int = 0
    overhead: float = 0.0
    payload: float = 0.0
    packet_size: float = 0.0
    start_time: float = 0.0
    arrival_time: float = 0.0
    end_time: float = 0.0
    packet_flag: int = 0
    network_protocol: int = 0
    previous: Optional[NetworkData] = None

    def __post_init__(self) -> None:
        self.source_ip = _as_ip(self.source_ip)
        self.dest_ip = _as_ip(self.dest_ip)
        self.gateway_ip = _as_ip(self.gateway_ip)
        self.next_hop_ip = _as_ip(self.next_hop_ip)


@dataclass
class Packet:
    """A simulated packet."""

    network: NetworkData = field(default_factory=NetworkData)
    id: int = 0
    control_type: int = 0
    status: Optional[str] = None
    destinations: list[int] = field(default_factory=list)
    transmitter_id: int = 0
    receiver_id: int = 0
    transport_size: Optional[float] = None
    application_id: int = 0
    segment_id: int = 0
    source_mac: Optional[str] = None
    dest_mac: Optional[str] = None
    protocol_data: Any = None

    def copy(self) -> Packet:
        """Return an independent copy of the packet."""
        return copy.deepcopy(self)


@dataclass
class ForwardRoute:
    """One hop chosen for a packet: where it goes and through which interface."""

    next_hop: Optional[IPAddress]
    gateway: Optional[IPAddress]
    interface_id: int
    next_hop_id: int = 0


@dataclass
class RouteEntry:
    """One entry of an IP routing table."""

    network_destination: IPAddress
    net_mask: Optional[IPAddress] = None
    gateway: Optional[IPAddress] = None
    interfaces: list[IPAddress] = field(default_factory=list)
    interface_ids: list[int] = field(default_factory=list)
    prefix_len: int = 0
    metric: int = 0
    type: RoutingType = RoutingType.STRING
    kind: str = ""
    update_time: float = 0.0
    gateway_id: int = 0

    def __post_init__(self) -> None:
        self.network_destination = _as_ip(self.network_destination)
        self.net_mask = _as_ip(self.net_mask)
        self.gateway = _as_ip(self.gateway)
        self.interfaces = [_as_ip(ip) for ip in self.interfaces]


@dataclass
class IpMetrics:
    """Per-device packet counters."""

    device_id: int
    sent: int = 0
    received: int = 0
    forwarded: int = 0
    discarded: int = 0
    firewall_blocked: int = 0
    ttl_drop: int = 0


@dataclass
class Event:
    """A scheduled simulation event."""

    time: float
    device_id: int
    type: EventType
    interface_id: int = 0
    subevent: int = 0
    protocol: int = 0
    packet: Optional[Packet] = None
    packet_size: float = 0.0
    details: Any = None


def is_broadcast_ip(ip: Any) -> bool:
    """Whether the address is the limited broadcast address."""
    return _as_ip(ip) == _LIMITED_BROADCAST


def is_multicast_ip(ip: Any) -> bool:
    """Whether the address is a multicast address."""
    ip = _as_ip(ip)
    return ip is not None and ip.is_multicast


def _prefix_mask(bits: int, prefix_len: int) -> int:
    full = (1 << bits) - 1
    return full ^ ((1 << (bits - prefix_len)) - 1)


def network_address(ip: Any, mask: Any = None, prefix_len: int = 0) -> IPAddress:
    """Network part of an address: IPv4 by mask, IPv6 by prefix length."""
    ip = _as_ip(ip)
    mask = _as_ip(mask)
    if ip.version == 4 and mask is not None:
        bits = int(mask)
    else:
        bits = _prefix_mask(ip.max_prefixlen, prefix_len)
    return type(ip)(int(ip) & bits)


def in_same_network(a: Any, b: Any, mask: Any = None, prefix_len: int = 0) -> bool:
    """Whether two addresses fall in the same network."""
    a = _as_ip(a)
    b = _as_ip(b)
    if a is None or b is None or a.version != b.version:
        return False
    return network_address(a, mask, prefix_len) == network_address(b, mask, prefix_len)