"""Service client factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ReplayflowConfig, load_config
from .base import BaseServiceClient
from .inmemory import InMemoryServiceClient


def get_service_client(
    backend: Optional[str] = None, config: Optional[ReplayflowConfig] = None
) -> BaseServiceClient:
    """Factory function to get the configured service client."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("REPLAYFLOW_BACKEND")
        or config.service.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryServiceClient()
    elif backend == "swf":
        from .swf import SWFServiceClient

        swf_conf = config.service.swf
        if not swf_conf.domain:
            raise ValueError("An SWF domain is required for the swf backend")
        return SWFServiceClient(
            domain=swf_conf.domain,
            region=swf_conf.region,
            endpoint_url=swf_conf.endpoint_url,
            maximum_page_size=config.decider.maximum_page_size,
            reverse_order=config.decider.reverse_order,
        )
    else:
        raise ValueError(f"Unsupported service backend: {backend}")


__all__ = ["BaseServiceClient", "InMemoryServiceClient", "get_service_client"]
