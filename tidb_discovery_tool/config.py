"""Operator-level configuration for the discovery reconciler."""

import os
from dataclasses import dataclass

DEFAULT_DISCOVERY_IMAGE = "pingcap/tidb-operator:latest"
DISCOVERY_IMAGE_ENV = "TIDB_DISCOVERY_IMAGE"


@dataclass(frozen=True)
class DiscoveryConfig:
    discovery_image: str = DEFAULT_DISCOVERY_IMAGE

    @classmethod
    def from_env(cls) -> "DiscoveryConfig":
        return cls(
            discovery_image=os.environ.get(DISCOVERY_IMAGE_ENV) or DEFAULT_DISCOVERY_IMAGE,
        )
