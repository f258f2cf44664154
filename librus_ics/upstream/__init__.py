"""Upstream register access."""

from .gateway import LibrusGateway, UpstreamGateway

__all__ = ["LibrusGateway", "UpstreamGateway"]
