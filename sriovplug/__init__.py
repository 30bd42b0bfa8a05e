"""SR-IOV device queries from sysfs, device selectors, DDP profiles and resource pools."""

__version__ = "0.1.0"
__all__ = ["ddp", "pool", "providers", "selectors", "sysfs", "types"]