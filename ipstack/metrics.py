"""IP metrics and forwarding tables laid out as metrics report nodes."""

from __future__ import annotations

from typing import Iterable, Mapping, Optional

from .metrics_writer import MetricsNode, MetricsTable
from .model import IpMetrics, Network, RouteEntry, RoutingType

IP_METRICS_HEADINGS = (
    ("Device Id", True),
    ("Packet sent", True),
    ("Packet forwarded", True),
    ("Packet received", True),
    ("Packet discarded", False),
    ("TTL expired", False),
    ("Firewall blocked", False),
)

FORWARDING_TABLE_HEADINGS = (
    ("Network Destination", True),
    ("Netmask/Prefix len", True),
    ("Gateway", True),
    ("Interface", True),
    ("Metrics", False),
    ("Type", False),
)

_TYPE_LABELS = {
    RoutingType.DEFAULT: "Default",
    RoutingType.STATIC: "Static",
}


def route_type_label(entry: RouteEntry) -> str:
    """The type column of an entry: its kind if named, else from its routing type."""
    if entry.kind:
        return entry.kind
    return _TYPE_LABELS.get(entry.type, "-")


def ip_metrics_menu(metrics: Iterable[Optional[IpMetrics]]) -> MetricsNode:
    """A menu holding one table with the packet counters of each device."""
    menu = MetricsNode("IP_Metrics")
    table = menu.add(MetricsTable("IP_Metrics"))
    for name, show in IP_METRICS_HEADINGS:
        table.add_heading(name, show)
    for m in metrics:
        if m is None:
            continue
        table.add_cells(
            False,
            m.device_id,
            m.sent,
            m.forwarded,
            m.received,
            m.discarded,
            m.ttl_drop,
            m.firewall_blocked,
        )
    return menu


def _mask_cell(entry: RouteEntry) -> str:
    if entry.network_destination.version == 4:
        return str(entry.net_mask) if entry.net_mask is not None else "-"
    return str(entry.prefix_len)


def forwarding_table_menu(
    network: Network, tables: Mapping[int, Iterable[RouteEntry]]
) -> MetricsNode:
    """A menu with one sub-menu and table per device that has routing entries."""
    menu = MetricsNode("IP_Forwarding_Table")
    for device in network.devices:
        if not device.has_network_layer:
            continue
        entries = list(tables.get(device.id, ()))
        if not entries:
            continue
        submenu = menu.add(MetricsNode(device.name))
        table = submenu.add(MetricsTable(device.name))
        for name, show in FORWARDING_TABLE_HEADINGS:
            table.add_heading(name, show)
        for entry in entries:
            gateway = str(entry.gateway) if entry.gateway is not None else "on-link"
            interfaces = "".join(f"{ip} " for ip in entry.interfaces)
            table.add_cells(
                False,
                entry.network_destination,
                _mask_cell(entry),
                gateway,
                interfaces,
                entry.metric,
                route_type_label(entry),
            )
    return menu