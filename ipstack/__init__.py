"""Network-layer model for discrete-event simulation: routing, NAT, multicast, PIM groups and metrics."""

__version__ = "0.1.0"