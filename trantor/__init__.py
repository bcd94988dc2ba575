"""Reactor-style non-blocking TCP building blocks: event loops, channels, sockets, acceptors, connectors, buffers and DNS resolution."""

__version__ = "1.5.25"