"""A resource pool: a named set of host devices handed out to containers."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .types import AdditionalInfo, Device, DeviceSpec, Mount, ResourceConfig

log = logging.getLogger(__name__)

POOL_TYPE = "net-pci"

_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _to_json(value: Any) -> str:
    text = json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    for char, escape in _JSON_ESCAPES.items():
        text = text.replace(char, escape)
    return text


def _env_key(*parts: str) -> str:
    return "_".join(parts).replace(".", "_").upper()


class ResourcePool:
    """Devices of one resource, keyed by device ID."""

    def __init__(self, config: ResourceConfig, device_pool: Mapping[str, Any]) -> None:
        self.config = config
        self.device_pool: dict[str, Any] = dict(device_pool)
        self.initialized = False
        self.device_info_prefixes: set[str] = set()

    @property
    def resource_name(self) -> str:
        return self.config.resource_name

    @property
    def resource_prefix(self) -> str:
        return self.config.resource_prefix

    @property
    def cdi_name(self) -> str:
        """Device kind used in CDI specs."""
        return POOL_TYPE

    def init_device(self) -> None:
        """Mark the pool's devices as ready; the generic pool needs no device setup."""
        self.initialized = True

    def get_devices(self) -> dict[str, Device]:
        """Return the kubelet API device of every device in the pool."""
        return {dev_id: dev.get_api_device() for dev_id, dev in self.device_pool.items()}

    def probe(self) -> bool:
        """Return True if device health changed; the generic pool never reports changes."""
        return False

    def _known(self, device_ids: Iterable[str]) -> list[tuple[str, Any]]:
        return [(i, self.device_pool[i]) for i in device_ids if i in self.device_pool]

    def get_device_specs(self, device_ids: Sequence[str]) -> list[DeviceSpec]:
        """Return the device specs of the given devices, without duplicate host paths."""
        log.info("GetDeviceSpecs(): for devices: %s", list(device_ids))
        specs: list[DeviceSpec] = []
        for _, dev in self._known(device_ids):
            for spec in dev.get_device_specs():
                if not self.device_spec_exists(specs, spec):
                    specs.append(spec)
        return specs

    def get_envs(self, prefix: str, device_ids: Sequence[str]) -> dict[str, str]:
        """Return the PCIDEVICE_<prefix>_<name> and matching _INFO environment variables."""
        log.info("GetEnvs(): for devices: %s", list(device_ids))
        infos: dict[str, dict[str, AdditionalInfo]] = {}
        ids: list[str] = []
        for dev_id, dev in self._known(device_ids):
            infos[dev_id] = dev.get_env_val()
            ids.append(dev_id)
        try:
            info_json = _to_json(infos)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"failed to marshal environment variable object: {exc}") from exc
        return {
            _env_key("PCIDEVICE", prefix, self.resource_name): ",".join(ids),
            _env_key("PCIDEVICE", prefix, self.resource_name, "INFO"): info_json,
        }

    def get_mounts(self, device_ids: Sequence[str]) -> list[Mount]:
        """Return the mounts of the given devices."""
        log.info("GetMounts(): for devices: %s", list(device_ids))
        return [mount for _, dev in self._known(device_ids) for mount in dev.get_mounts()]

    def device_spec_exists(self, specs: Iterable[DeviceSpec], new_spec: DeviceSpec) -> bool:
        """Return True if a spec with the same host path is already in ``specs``."""
        return any(spec.host_path == new_spec.host_path for spec in specs)

    def store_device_info_file(self, resource_name_prefix: str) -> None:
        """Record the prefix as stored; the generic pool writes no files."""
        self.device_info_prefixes.add(resource_name_prefix)

    def clean_device_info_file(self, resource_name_prefix: str) -> None:
        """Forget the prefix as stored; the generic pool has no files to remove."""
        self.device_info_prefixes.discard(resource_name_prefix)