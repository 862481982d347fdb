from .base import OffloadPolicy
from .cloudalg import CloudAlg
from .homefog import HomeFog
from .mindelay import MinDelay, WithoutCloudMinDelay
from .po2 import ModPO2, PowerOfTwo
from .vfr import VFR, VFog

POLICIES = {
    "homefog": HomeFog,
    "po2": PowerOfTwo,
    "modpo2": ModPO2,
    "mindelay": MinDelay,
    "without-cloud-mindelay": WithoutCloudMinDelay,
    "cloudalg": CloudAlg,
    "vfr": VFR,
    "vfog": VFog,
}


def create_policy(name, **params):
    """Create a policy instance by its registry name."""
    try:
        cls = POLICIES[name.lower()]
    except KeyError:
        raise ValueError(f"unknown policy {name!r}, expected one of {sorted(POLICIES)}") from None
    return cls(**params)
