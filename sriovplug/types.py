"""Core data types: device kinds, selector sets and resource configuration."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Protocol, runtime_checkable

SOCK_DIR = "/var/lib/kubelet/plugins_registry"
DEPRECATED_SOCK_DIR = "/var/lib/kubelet/device-plugins"
KUBE_END_POINT = "kubelet.sock"

HEALTHY = "Healthy"
UNHEALTHY = "Unhealthy"

AdditionalInfo = dict[str, str]


class DeviceType(str, Enum):
    """Kinds of devices a resource pool can hold."""

    NET_DEVICE = "netDevice"
    ACCELERATOR = "accelerator"
    AUX_NET_DEVICE = "auxNetDevice"


class VdpaType(str, Enum):
    """Supported vDPA device flavours."""

    VIRTIO = "virtio"
    VHOST = "vhost"
    INVALID = "invalid"


# PCI class codes: 0x02 network controller, 0x12 processing accelerator.
SUPPORTED_DEVICES: dict[DeviceType, int] = {
    DeviceType.NET_DEVICE: 0x02,
    DeviceType.ACCELERATOR: 0x12,
    DeviceType.AUX_NET_DEVICE: 0x02,
}

SUPPORTED_VDPA_TYPES: dict[VdpaType, str] = {
    VdpaType.VIRTIO: "virtio_vdpa",
    VdpaType.VHOST: "vhost_vdpa",
}


@dataclass(frozen=True)
class Device:
    """A device as advertised to the kubelet."""

    id: str
    health: str = HEALTHY
    numa_nodes: tuple[int, ...] = ()


@dataclass(frozen=True)
class DeviceSpec:
    """A host device node to expose inside a container."""

    container_path: str
    host_path: str
    permissions: str = "rw"


@dataclass(frozen=True)
class Mount:
    """A host path to mount inside a container."""

    container_path: str
    host_path: str
    read_only: bool = False


def _strings(key: str) -> Any:
    return field(default_factory=list, metadata={"json": key, "kind": "strings"})


def _flag(key: str) -> Any:
    return field(default=False, metadata={"json": key, "kind": "bool", "keep": True})


class _JsonFields:
    """Mapping between selector dataclasses and their JSON objects."""

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        if not isinstance(data, dict):
            raise ValueError(f"{cls.__name__} must be a JSON object")
        kwargs: dict[str, Any] = {}
        for f in fields(cls):  # type: ignore[arg-type]
            key = f.metadata.get("json", f.name)
            value = data.get(key)
            if value is None:
                continue
            kwargs[f.name] = _convert(f.metadata.get("kind"), key, value)
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if not value and not f.metadata.get("keep"):
                continue
            key = f.metadata.get("json", f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, list):
                value = list(value)
            out[key] = value
        return out


def _convert(kind: str | None, key: str, value: Any) -> Any:
    if kind == "strings":
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError(f"{key!r} must be a list of strings")
        return list(value)
    if kind == "bool":
        if not isinstance(value, bool):
            raise ValueError(f"{key!r} must be a boolean")
        return value
    if kind == "vdpa":
        return VdpaType(value)
    return value


@dataclass(kw_only=True)
class DeviceSelectors(_JsonFields):
    """Selectors common to every device type."""

    vendors: list[str] = _strings("vendors")
    devices: list[str] = _strings("devices")
    drivers: list[str] = _strings("drivers")


@dataclass(kw_only=True)
class GenericPciDeviceSelectors(_JsonFields):
    """Selectors common to PCI devices."""

    pci_addresses: list[str] = _strings("pciAddresses")


@dataclass(kw_only=True)
class GenericNetDeviceSelectors(_JsonFields):
    """Selectors common to network devices."""

    pf_names: list[str] = _strings("pfNames")
    root_devices: list[str] = _strings("rootDevices")
    link_types: list[str] = _strings("linkTypes")
    is_rdma: bool = _flag("IsRdma")
    acpi_indexes: list[str] = _strings("acpiIndexes")


@dataclass(kw_only=True)
class NetDeviceSelectors(DeviceSelectors, GenericPciDeviceSelectors, GenericNetDeviceSelectors):
    """Selectors for PCI network devices."""

    ddp_profiles: list[str] = _strings("ddpProfiles")
    need_vhost_net: bool = _flag("NeedVhostNet")
    vdpa_type: VdpaType | None = field(default=None, metadata={"json": "vdpaType", "kind": "vdpa"})


@dataclass(kw_only=True)
class AccelDeviceSelectors(DeviceSelectors, GenericPciDeviceSelectors):
    """Selectors for accelerator devices."""


@dataclass(kw_only=True)
class AuxNetDeviceSelectors(DeviceSelectors, GenericNetDeviceSelectors):
    """Selectors for auxiliary network devices."""

    aux_types: list[str] = _strings("auxTypes")


def _str_field(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key!r} must be a string")
    return value


def _additional_info(value: Any) -> dict[str, AdditionalInfo]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("'additionalInfo' must be an object")
    result: dict[str, AdditionalInfo] = {}
    for name, info in value.items():
        if not isinstance(info, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in info.items()
        ):
            raise ValueError(f"additional info for {name!r} must map strings to strings")
        result[name] = dict(info)
    return result


@dataclass
class ResourceConfig:
    """Configuration of one resource pool."""

    resource_name: str = ""
    resource_prefix: str = ""
    device_type: DeviceType | None = None
    exclude_topology: bool = False
    selectors: Any = None
    additional_info: dict[str, AdditionalInfo] = field(default_factory=dict)
    selector_objs: list[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceConfig:
        if not isinstance(data, dict):
            raise ValueError("resource config must be a JSON object")
        exclude = data.get("excludeTopology", False)
        if not isinstance(exclude, bool):
            raise ValueError("'excludeTopology' must be a boolean")
        device_type = _str_field(data, "deviceType")
        return cls(
            resource_name=_str_field(data, "resourceName"),
            resource_prefix=_str_field(data, "resourcePrefix"),
            device_type=DeviceType(device_type) if device_type else None,
            exclude_topology=exclude,
            selectors=data.get("selectors"),
            additional_info=_additional_info(data.get("additionalInfo")),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.resource_prefix:
            out["resourcePrefix"] = self.resource_prefix
        out["resourceName"] = self.resource_name
        if self.device_type:
            out["deviceType"] = self.device_type.value
        if self.exclude_topology:
            out["excludeTopology"] = True
        if self.selectors is not None:
            out["selectors"] = self.selectors
        if self.additional_info:
            out["additionalInfo"] = {k: dict(v) for k, v in self.additional_info.items()}
        return out


@dataclass
class ResourceConfList:
    """The list of resource pools read from the configuration file."""

    resource_list: list[ResourceConfig] = field(default_factory=list)

    @classmethod
    def from_json(cls, text: str | bytes) -> ResourceConfList:
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise ValueError(f"invalid resource configuration: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("resource configuration must be a JSON object")
        items = data.get("resourceList")
        if items is None:
            return cls()
        if not isinstance(items, list):
            raise ValueError("'resourceList' must be a list")
        return cls([ResourceConfig.from_dict(item) for item in items])


@runtime_checkable
class HostDevice(Protocol):
    """A generic device the plugin can hand out."""

    @property
    def vendor(self) -> str: ...

    @property
    def driver(self) -> str: ...

    @property
    def device_id(self) -> str: ...

    @property
    def device_code(self) -> str: ...

    def get_device_specs(self) -> list[DeviceSpec]: ...

    def get_env_val(self) -> dict[str, AdditionalInfo]: ...

    def get_mounts(self) -> list[Mount]: ...

    def get_api_device(self) -> Device: ...


@runtime_checkable
class PciDevice(HostDevice, Protocol):
    """A host device on the PCI bus."""

    @property
    def pci_addr(self) -> str: ...

    @property
    def acpi_index(self) -> str: ...


@runtime_checkable
class NetDevice(HostDevice, Protocol):
    """A host device with network interfaces."""

    @property
    def pf_net_name(self) -> str: ...

    @property
    def pf_pci_addr(self) -> str: ...

    @property
    def net_name(self) -> str: ...

    @property
    def link_type(self) -> str: ...

    @property
    def link_speed(self) -> str: ...

    @property
    def func_id(self) -> int: ...

    @property
    def is_rdma(self) -> bool: ...


@runtime_checkable
class PciNetDevice(PciDevice, NetDevice, Protocol):
    """A PCI network device."""

    @property
    def ddp_profiles(self) -> str: ...

    @property
    def vdpa_device(self) -> Any: ...


@runtime_checkable
class AuxNetDevice(NetDevice, Protocol):
    """An auxiliary network device."""

    @property
    def aux_type(self) -> str: ...