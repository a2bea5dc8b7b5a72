"""Reading the IP settings of devices and interfaces, and the packet trace fields."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from .model import (
    Device,
    DeviceIpConfig,
    DeviceType,
    Interface,
    IPAddress,
    Packet,
    VpnState,
)

DEFAULT_BUFFER_SIZE = 8

_TRUE_WORDS = frozenset({"TRUE", "ENABLE", "YES", "1"})


class ConfigError(ValueError):
    """A configuration value is missing or invalid."""


class Scheduling(Enum):
    """Queue scheduling of a router's interface buffer."""

    FIFO = "FIFO"
    PRIORITY = "PRIORITY"
    ROUND_ROBIN = "ROUND ROBIN"
    WFQ = "WFQ"


@dataclass
class BufferConfig:
    """Buffer settings of a router interface; size in MB."""

    max_buffer_size: int = DEFAULT_BUFFER_SIZE
    scheduling: Scheduling = Scheduling.FIFO


def _normalise(values: Mapping[str, Any]) -> dict[str, str]:
    return {str(k).upper(): str(v) for k, v in values.items() if v is not None}


def _required(values: dict[str, str], key: str) -> str:
    try:
        return values[key]
    except KeyError:
        raise ConfigError(f"{key} is not configured") from None


def _int(key: str, text: str) -> int:
    try:
        return int(text.strip())
    except ValueError:
        raise ConfigError(f"{key} must be a number, not {text!r}") from None


def _ip(key: str, text: str, version: Optional[int] = None) -> IPAddress:
    try:
        ip = ipaddress.ip_address(text.strip())
    except ValueError:
        raise ConfigError(f"{key} is not an IP address: {text!r}") from None
    if version is not None and ip.version != version:
        raise ConfigError(f"{key} is not an IPv{version} address: {text!r}")
    return ip


def _bool(values: dict[str, str], key: str, default: bool = False) -> bool:
    if key not in values:
        return default
    return values[key].strip().upper() in _TRUE_WORDS


def _scheduling(text: Optional[str]) -> Scheduling:
    if text is None:
        return Scheduling.FIFO
    upper = text.strip().upper()
    for kind in Scheduling:
        if kind.value == upper:
            return kind
    return Scheduling.FIFO


def configure_interface(
    device: Device, interface: Interface, values: Mapping[str, Any]
) -> Optional[BufferConfig]:
    """Apply the IP settings of one interface.

    Returns the buffer settings when the device is a router, otherwise None.
    """
    vals = _normalise(values)
    buffer: Optional[BufferConfig] = None
    if device.type is DeviceType.ROUTER:
        size = vals.get("BUFFER_SIZE")
        buffer = BufferConfig(
            max_buffer_size=_int("BUFFER_SIZE", size) if size is not None else DEFAULT_BUFFER_SIZE,
            scheduling=_scheduling(vals.get("SCHEDULING_TYPE")),
        )

    version = interface.protocol_version
    if version not in (4, 6):
        raise ConfigError(f"interface {interface.id} of device {device.id} has no IP version")

    interface.address = _ip("IP_ADDRESS", _required(vals, "IP_ADDRESS"), version)
    if version == 4:
        interface.subnet_mask = _ip("SUBNET_MASK", _required(vals, "SUBNET_MASK"), 4)
    else:
        interface.prefix_len = _int("PREFIX_LENGTH", _required(vals, "PREFIX_LENGTH"))

    gateway = vals.get("DEFAULT_GATEWAY")
    if gateway is not None:
        interface.default_gateway = _ip("DEFAULT_GATEWAY", gateway, version)
    return buffer


def configure_device(config: DeviceIpConfig, values: Mapping[str, Any]) -> DeviceIpConfig:
    """Apply the device-wide IP settings and return the updated configuration."""
    vals = _normalise(values)

    config.igmp_configured = _bool(vals, "IGMP_STATUS")
    config.static_ip_table_file = vals.get("STATIC_IP_ROUTE", "")
    config.pim_configured = _bool(vals, "PIM_STATUS")

    if vals.get("ACL_STATUS", "").strip().upper() == "ENABLE":
        acl_file = vals.get("ACL_CONFIG_FILE")
        config.firewall_configured = acl_file is not None
        if acl_file is not None:
            config.firewall_config = acl_file

    config.icmp = _bool(vals, "ICMP_STATUS")
    if config.icmp:
        if "ICMP_CONTINUOUS_POLLING_TIME" in vals:
            config.icmp_polling_time = _int(
                "ICMP_CONTINUOUS_POLLING_TIME", vals["ICMP_CONTINUOUS_POLLING_TIME"]
            )
        if vals.get("ROUTER_ADVERTISEMENT", "").strip().upper() == "TRUE":
            config.router_advertisement = True
        if config.router_advertisement:
            for key, attr in (
                ("ROUTER_ADVERTISEMENT_MIN_INTERVAL", "router_adver_min_interval"),
                ("ROUTER_ADVERTISEMENT_MAX_INTERVAL", "router_adver_max_interval"),
                ("ROUTER_ADVERTISEMENT_LIFE_TIME", "router_adver_lifetime"),
            ):
                if key in vals:
                    setattr(config, attr, _int(key, vals[key]))

    status = vals.get("VPN_STATUS", "").strip().upper()
    if status == "SERVER":
        config.vpn_status = VpnState.SERVER
        for key, attr in (
            ("IP_POOL_START", "ip_pool_start"),
            ("IP_POOL_END", "ip_pool_end"),
            ("IP_POOL_MASK", "ip_pool_mask"),
        ):
            if key in vals:
                setattr(config, attr, _ip(key, vals[key], 4))
            else:
                config.vpn_status = VpnState.DISABLE
    elif status == "CLIENT":
        config.vpn_status = VpnState.CLIENT
        if "SERVER_IP" in vals:
            config.server_ip = _ip("SERVER_IP", vals["SERVER_IP"], 4)
        else:
            config.vpn_status = VpnState.DISABLE
    return config


_TRACE_FIELDS = (
    ("SOURCE_IP", "source_ip"),
    ("DESTINATION_IP", "dest_ip"),
    ("GATEWAY_IP", "gateway_ip"),
    ("NEXT_HOP_IP", "next_hop_ip"),
)


@dataclass(frozen=True)
class PacketTraceConfig:
    """Which IP addresses are written to the packet trace."""

    source_ip: bool = False
    dest_ip: bool = False
    gateway_ip: bool = False
    next_hop_ip: bool = False

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> PacketTraceConfig:
        """Build from trace field statuses; a field is on when it says ENABLE."""
        vals = _normalise(fields)
        return cls(
            **{
                attr: vals.get(name, "").strip().upper() == "ENABLE"
                for name, attr in _TRACE_FIELDS
            }
        )

    def _enabled(self) -> list[tuple[str, str]]:
        return [(name, attr) for name, attr in _TRACE_FIELDS if getattr(self, attr)]

    def heading(self) -> str:
        """The trace heading: each enabled field name followed by a comma."""
        return "".join(f"{name}," for name, _ in self._enabled())

    def format(self, packet: Packet) -> str:
        """The trace cells of a packet; an absent address is written as '-'."""
        data = packet.network
        if data is None:
            return ""
        cells = []
        for _, attr in self._enabled():
            ip = getattr(data, attr)
            cells.append(f"{ip if ip is not None else '-'},")
        return "".join(cells)