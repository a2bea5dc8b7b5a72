"""The IP layer of a simulated device: routing packets down and handing them up."""

from __future__ import annotations

import ipaddress
import logging
from collections import deque
from pathlib import Path
from typing import Callable, Optional, Union

from .model import (
    DEFAULT_METRIC,
    IPV4_HEADER_SIZE,
    MULTICAST_METRIC,
    ONLINK_METRIC,
    Action,
    DeviceType,
    Event,
    EventType,
    ForwardRoute,
    GatewayState,
    InterfaceType,
    IpMetrics,
    IpProtocol,
    IPAddress,
    Network,
    Packet,
    SubEvent,
    in_same_network,
    is_broadcast_ip,
    is_multicast_ip,
    network_address,
)
from .multicast import HostLookup, check_ip_in_multicastgroup
from .nat import nat_network_in, nat_network_out
from .routing import Reachability, RoutingTable, configure_static_ip_route, route_packet
from .topology import set_public_ip

log = logging.getLogger(__name__)

BROADCAST_MAC = "FF:FF:FF:FF:FF:FF"
TTL_EXPIRED = "TTL_Expired"

FirewallCheck = Callable[[int, int, Packet, bool], bool]
RoutingHook = Callable[[int, Packet], bool]
PimDecide = Callable[[Packet, int], Action]
ControlHandler = Callable[[int, int, Packet, float], None]
UnreachableHandler = Callable[[int, Packet], None]
MacLookup = Callable[[IPAddress], Optional[str]]

_SUBEVENT_NAMES = {
    SubEvent.ICMP_POLL: "ICMP_POLL",
    SubEvent.ADVERTISE_ROUTER: "ICMP_Advertise_Router",
    SubEvent.IGMP_DELAY_TIMER: "IGMP_DelayTimer",
    SubEvent.IGMP_GROUP_MEMBERSHIP_TIMER: "IGMP_GroupMembershipTimer",
    SubEvent.IGMP_OTHER_QUERIER_PRESENT_TIMER: "IGMP_OtherQueierPresentTimer",
    SubEvent.IGMP_SEND_QUERY: "IGMP_SendQuery",
    SubEvent.IGMP_SEND_STARTUP_QUERY: "IGMP_SendStartupQuery",
    SubEvent.IGMP_UNSOLICITED_REPORT: "IGMP_UnsolicitedReportTimer",
    SubEvent.IP_INIT_TABLE: "IP_INIT_TABLE",
}

_V4_ANY = ipaddress.IPv4Address("0.0.0.0")
_V4_ALL = ipaddress.IPv4Address("255.255.255.255")
_V4_MCAST = ipaddress.IPv4Address("224.0.0.0")
_V4_MCAST_MASK = ipaddress.IPv4Address("240.0.0.0")
_V4_ALL_HOSTS = ipaddress.IPv4Address("224.0.0.1")
_V6_ANY = ipaddress.IPv6Address("::")
_V6_BROADCAST = ipaddress.IPv6Address("ff00::")
_V6_MCAST = ipaddress.IPv6Address("ff02::")
_V6_ALL_HOSTS = ipaddress.IPv6Address("ff02::1")


class IpError(RuntimeError):
    """The IP layer was asked to do something it cannot."""


def trace_subevent(subevent: int) -> str:
    """The name of an IP sub-event as written to the event trace."""
    try:
        return _SUBEVENT_NAMES.get(SubEvent(subevent), "IP_UNKNOWN_SUBEVENT")
    except ValueError:
        return "IP_UNKNOWN_SUBEVENT"


def _default_host_lookup(device_id: int, ip: IPAddress, packet: Packet) -> Action:
    return Action.MOVEUP if device_id in packet.destinations else Action.DROP


def _multicast_mac(ip: IPAddress) -> str:
    if ip.version == 4:
        low = int(ip) & 0x7FFFFF
        octets = [0x01, 0x00, 0x5E, low >> 16, (low >> 8) & 0xFF, low & 0xFF]
    else:
        low = int(ip) & 0xFFFFFFFF
        octets = [0x33, 0x33, low >> 24, (low >> 16) & 0xFF, (low >> 8) & 0xFF, low & 0xFF]
    return ":".join(f"{o:02X}" for o in octets)


class IpLayer:
    """IP processing for every device of a network.

    Behaviour that belongs to other protocols is supplied through optional
    callables: a firewall check, a routing protocol, PIM decisions, handlers
    for ICMP/IGMP/PIM packets, an ICMP unreachable generator, a gateway
    reachability test and an address-to-MAC lookup.
    """

    def __init__(
        self,
        network: Network,
        io_path: Union[str, Path] = ".",
        *,
        host_lookup: Optional[HostLookup] = None,
        firewall: Optional[FirewallCheck] = None,
        routing_protocol: Optional[RoutingHook] = None,
        pim_decide: Optional[PimDecide] = None,
        control_handler: Optional[ControlHandler] = None,
        unreachable: Optional[UnreachableHandler] = None,
        is_reachable: Optional[Reachability] = None,
        mac_of: Optional[MacLookup] = None,
    ) -> None:
        self.network = network
        self.io_path = Path(io_path)
        self.host_lookup = host_lookup or _default_host_lookup
        self.firewall = firewall
        self.routing_protocol = routing_protocol
        self.pim_decide = pim_decide
        self.control_handler = control_handler
        self.unreachable = unreachable
        self.is_reachable = is_reachable
        self.mac_of = mac_of
        self.tables: dict[int, RoutingTable] = {}
        self.metrics: dict[int, IpMetrics] = {}
        self.events: list[Event] = []
        self.buffers: dict[tuple[int, int], deque[Packet]] = {}

    def table(self, device_id: int) -> RoutingTable:
        """The routing table of a device, created empty on first use."""
        if device_id not in self.tables:
            self.tables[device_id] = RoutingTable(self.network)
        return self.tables[device_id]

    def metrics_of(self, device_id: int) -> IpMetrics:
        """The packet counters of a device."""
        if device_id not in self.metrics:
            config_id = self.network.device(device_id).config_id
            self.metrics[device_id] = IpMetrics(config_id)
        return self.metrics[device_id]

    def _device_of(self, ip: Optional[IPAddress]) -> int:
        owner = self.network.find_device_by_ip(ip) if ip is not None else None
        return owner[0] if owner else 0

    def init(self) -> None:
        """Set up public addresses, tables, static routes and counters of every device."""
        for device in self.network.devices:
            if not device.has_network_layer:
                continue
            set_public_ip(self.network, device.id)
            self.add_default_entries(device.id)
            cfg = device.ip_config
            if cfg.static_ip_table_file:
                configure_static_ip_route(
                    self.network,
                    device.id,
                    self.table(device.id),
                    self.io_path / cfg.static_ip_table_file,
                )
            cfg.gateway_ids = [self._device_of(ip) for ip in cfg.gateway_ips]
            self.metrics_of(device.id)
            self.events.append(
                Event(
                    time=0.0,
                    device_id=device.id,
                    type=EventType.TIMER,
                    subevent=SubEvent.IP_INIT_TABLE,
                )
            )

    def _shares_address(self, device_id: int, pos: int) -> bool:
        """Whether another interface already accounts for this interface's address."""
        interfaces = self.network.device(device_id).interfaces
        own = interfaces[pos]
        is_default = own.default_gateway is not None
        found = False
        for other_pos, other in enumerate(interfaces):
            if other.address != own.address:
                continue
            if pos > other_pos:
                found = True
            if other.default_gateway is not None:
                if not is_default:
                    return True
                return pos > other_pos
        return found

    def add_default_entries(self, device_id: int) -> None:
        """Add the local, default, broadcast and multicast entries of a device."""
        device = self.network.device(device_id)
        if not device.has_network_layer:
            return
        table = self.table(device_id)
        cfg = device.ip_config
        for pos, iface in enumerate(device.interfaces):
            ip = iface.address
            if ip is None or self._shares_address(device_id, pos):
                continue
            v4 = ip.version == 4
            ifs = ([ip], [iface.id])

            table.add(
                network_address(ip, iface.subnet_mask, iface.prefix_len),
                iface.subnet_mask, iface.prefix_len, None, *ifs, ONLINK_METRIC, "LOCAL",
            )

            gateway = iface.default_gateway
            if gateway is not None and gateway != ip:
                if v4:
                    table.add(_V4_ANY, _V4_ANY, 0, gateway, *ifs, DEFAULT_METRIC, "DEFAULT")
                else:
                    table.add(_V6_ANY, None, 0, gateway, *ifs, DEFAULT_METRIC, "DEFAULT")
                cfg.gateway_ips.append(gateway)
                cfg.gateway_states.append(GatewayState.UP)
                cfg.gateway_interfaces.append(iface.id)

            if iface.interface_type is not InterfaceType.WAN_ROUTER:
                if v4:
                    table.add(_V4_ALL, _V4_ALL, 0, None, *ifs, DEFAULT_METRIC, "BROADCAST")
                else:
                    table.add(_V6_BROADCAST, None, 8, None, *ifs, DEFAULT_METRIC, "BROADCAST")

            if v4:
                table.add(_V4_MCAST, _V4_MCAST_MASK, 0, None, *ifs, MULTICAST_METRIC, "MULTICAST")
                table.add(_V4_ALL_HOSTS, _V4_ALL, 0, None, *ifs, MULTICAST_METRIC, "MULTICAST")
            else:
                table.add(_V6_MCAST, None, 16, None, *ifs, MULTICAST_METRIC, "MULTICAST")
                table.add(_V6_ALL_HOSTS, None, 128, None, *ifs, MULTICAST_METRIC, "MULTICAST")

    def _dest_found(self, packet: Packet, device_id: int) -> bool:
        if device_id in packet.destinations:
            return True
        dest = packet.network.dest_ip
        return dest is not None and self.network.device(device_id).owns_ip(dest)

    def decide_action(self, packet: Packet, device_id: int) -> Action:
        """Whether a received packet is dropped, passed up or routed on."""
        dest = packet.network.dest_ip
        kind = self.network.device(device_id).type
        if is_broadcast_ip(dest):
            return Action.MOVEUP if kind is DeviceType.HOST else Action.DROP
        if is_multicast_ip(dest):
            return check_ip_in_multicastgroup(
                self.network, dest, device_id, packet, self.host_lookup
            )
        if packet.network.ip_protocol == IpProtocol.PIM and self.pim_decide is not None:
            return self.pim_decide(packet, device_id)
        return Action.MOVEUP if self._dest_found(packet, device_id) else Action.REROUTE

    def _build_route(self, device_id: int, interface_id: int, packet: Packet) -> Optional[list[ForwardRoute]]:
        next_hop = packet.network.next_hop_ip
        if next_hop is None or not interface_id:
            return None
        iface = self.network.device(device_id).interface(interface_id)
        return [ForwardRoute(next_hop, iface.address, interface_id, self._device_of(next_hop))]

    def _route(self, device_id: int, interface_id: int, packet: Packet, static_only: bool) -> list[ForwardRoute]:
        return route_packet(
            self.table(device_id), packet, interface_id, static_only, self.is_reachable
        )

    def _consumed_by_protocol(self, device_id: int, packet: Packet) -> bool:
        return self.routing_protocol is not None and self.routing_protocol(device_id, packet)

    def network_out(
        self, device_id: int, interface_id: int, packet: Packet, now: float
    ) -> list[Packet]:
        """Route an outgoing packet; return the packets handed to the lower layer."""
        data = packet.network
        if data.ttl == 0:
            packet.status = TTL_EXPIRED
            self.metrics_of(device_id).ttl_drop += 1
            return []
        data.start_time = now
        data.arrival_time = now
        if packet.transport_size is not None:
            data.payload = packet.transport_size

        routes: Optional[list[ForwardRoute]]
        if data.next_hop_ip is not None:
            routes = self._build_route(device_id, interface_id, packet)
        else:
            routes = self._resolve(device_id, interface_id, packet)
            if routes is None:
                return []
            if not routes:
                self.metrics_of(device_id).discarded += 1
                if self.unreachable is not None and self.network.device(device_id).ip_config.icmp:
                    self.unreachable(device_id, packet)
                return []

        if routes is None:
            return [packet] if self.pass_to_lower_layer(device_id, packet, None, 0, now) else []

        sent = []
        last = len(routes) - 1
        for index, hop in enumerate(routes):
            p = packet if index == last else packet.copy()
            p.network.next_hop_ip = hop.next_hop
            if self.pass_to_lower_layer(device_id, p, routes, index, now):
                sent.append(p)
        return sent

    def _resolve(self, device_id: int, interface_id: int, packet: Packet) -> Optional[list[ForwardRoute]]:
        """Find hops for an unrouted packet; None when a protocol took it, [] when none."""
        routes = self._route(device_id, interface_id, packet, True)
        if routes:
            return routes
        nat_network_out(self.network, device_id, packet)
        if packet.network.next_hop_ip is None:
            routes = self._route(device_id, interface_id, packet, True)
            if routes:
                return routes
        if self._consumed_by_protocol(device_id, packet):
            return None
        if packet.network.next_hop_ip is not None:
            return self._build_route(device_id, interface_id, packet)
        return self._route(device_id, interface_id, packet, False)

    def pass_to_lower_layer(
        self,
        device_id: int,
        packet: Packet,
        route: Optional[list[ForwardRoute]],
        index: int,
        now: float,
    ) -> bool:
        """Hand a routed packet to the interface's queue; return whether it went."""
        device = self.network.device(device_id)
        data = packet.network
        if route:
            hop = route[index]
            data.next_hop_ip = hop.next_hop
            data.gateway_ip = hop.gateway
            receiver = hop.next_hop_id
            interface_id = hop.interface_id
        else:
            if data.gateway_ip is None:
                data.gateway_ip = next(
                    (i.address for i in device.interfaces
                     if i.address is not None and i.address.version == 4),
                    None,
                )
            interface_id = next(
                (i.id for i in device.interfaces
                 if data.gateway_ip is not None and i.address == data.gateway_ip),
                0,
            )
            if not interface_id:
                raise IpError(f"device {device_id} has no interface for {data.gateway_ip}")
            receiver = self._device_of(data.next_hop_ip)

        if self.firewall is not None and not self.firewall(device_id, interface_id, packet, False):
            self.metrics_of(device_id).firewall_blocked += 1
            return False

        if data.gateway_ip is not None and data.gateway_ip == data.next_hop_ip:
            raise IpError(f"Gateway IP and next hop IP are same. IP address={data.gateway_ip}")

        iface = device.interface(interface_id)
        data.overhead += IPV4_HEADER_SIZE
        data.packet_size = data.overhead + data.payload
        data.end_time = now
        data.network_protocol = iface.protocol_version
        packet.transmitter_id = device_id
        packet.receiver_id = receiver
        self.metrics_of(device_id).sent += 1

        if iface.local_protocol:
            self.events.append(
                Event(
                    time=now, device_id=device_id, type=EventType.NETWORK_OUT,
                    interface_id=interface_id, protocol=iface.local_protocol,
                    packet=packet, packet_size=data.packet_size,
                )
            )
            return True

        if self.mac_of is not None and data.gateway_ip is not None:
            packet.source_mac = self.mac_of(data.gateway_ip)
        next_hop = data.next_hop_ip
        if is_broadcast_ip(next_hop):
            packet.dest_mac = BROADCAST_MAC
        elif is_multicast_ip(next_hop):
            packet.dest_mac = _multicast_mac(next_hop)
        elif self.mac_of is not None and next_hop is not None:
            packet.dest_mac = self.mac_of(next_hop)

        buffer = self.buffers.setdefault((device_id, interface_id), deque())
        if not buffer:
            self.events.append(
                Event(
                    time=now, device_id=device_id, type=EventType.MAC_OUT,
                    interface_id=interface_id, packet=packet, packet_size=data.packet_size,
                )
            )
        buffer.append(packet)
        return True

    def network_in(
        self, device_id: int, interface_id: int, packet: Packet, now: float
    ) -> Optional[Action]:
        """Process a received packet; return the action taken, or None if a protocol took it."""
        data = packet.network
        iface = self.network.device(device_id).interface(interface_id)
        if not in_same_network(data.gateway_ip, iface.address, iface.subnet_mask, iface.prefix_len):
            return Action.DROP

        data.ttl -= 1
        data.overhead -= IPV4_HEADER_SIZE
        data.packet_size -= IPV4_HEADER_SIZE

        if self.firewall is not None and not self.firewall(device_id, interface_id, packet, True):
            self.metrics_of(device_id).firewall_blocked += 1
            return Action.DROP

        if self._consumed_by_protocol(device_id, packet):
            return None

        nat_network_in(self.network, device_id, packet)
        action = self.decide_action(packet, device_id)
        data = packet.network

        if action is Action.MOVEUP:
            protocol = data.ip_protocol
            if protocol in (IpProtocol.ICMP, IpProtocol.IGMP, IpProtocol.PIM):
                if self.control_handler is not None:
                    self.control_handler(device_id, interface_id, packet, now)
            elif protocol != IpProtocol.DSR:
                self.events.append(
                    Event(
                        time=now, device_id=device_id, type=EventType.TRANSPORT_IN,
                        interface_id=interface_id, packet=packet, packet_size=data.packet_size,
                    )
                )
                self.metrics_of(device_id).received += 1
        elif action is Action.REROUTE:
            data.next_hop_ip = None
            data.gateway_ip = None
            self.events.append(
                Event(
                    time=now, device_id=device_id, type=EventType.NETWORK_OUT,
                    interface_id=interface_id, protocol=iface.protocol_version,
                    packet=packet, packet_size=data.packet_size,
                )
            )
            self.metrics_of(device_id).forwarded += 1
        return action