"""Access to link, devlink, route and representor data of network devices."""

from __future__ import annotations

import ipaddress
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

_ENCAP_TYPES = {
    1: "ether",
    32: "infiniband",
    772: "loopback",
    65534: "none",
}

_UPLINK_PORT = re.compile(r"p\d+")


class ProviderError(Exception):
    """Raised when device information cannot be obtained."""


@dataclass(frozen=True)
class LinkAttrs:
    """Attributes of a network link."""

    name: str
    index: int = 0
    mtu: int = 0
    encap_type: str = ""
    hardware_addr: str = ""
    oper_state: str = ""


@dataclass(frozen=True)
class EswitchAttrs:
    """E-switch attributes of a devlink device."""

    mode: str = ""
    inline_mode: str = ""
    encap_mode: str = ""


@dataclass(frozen=True)
class Route:
    """An IPv4 route; ``dst`` is None for a default route."""

    dst: ipaddress.IPv4Network | None
    gateway: ipaddress.IPv4Address | None = None
    priority: int = 0
    link_name: str = ""

    @property
    def is_default(self) -> bool:
        return self.dst is None


class NetlinkProvider(Protocol):
    """Source of link, devlink and route data."""

    def get_link_attrs(self, if_name: str) -> LinkAttrs: ...

    def get_devlink_eswitch_attrs(self, pf_addr: str) -> EswitchAttrs: ...

    def get_ipv4_routes(self, if_name: str) -> list[Route]: ...


class SriovnetProvider(Protocol):
    """Source of SR-IOV representor data."""

    def get_uplink_representor(self, vf_pci_address: str) -> str: ...


def _read(path: Path) -> str | None:
    try:
        return path.read_text().strip()
    except OSError:
        return None


def _read_int(path: Path) -> int:
    text = _read(path)
    try:
        return int(text) if text is not None else 0
    except ValueError:
        return 0


def _hex_ipv4(value: str) -> ipaddress.IPv4Address:
    return ipaddress.IPv4Address(int(value, 16).to_bytes(4, sys.byteorder))


class SysfsNetlinkProvider:
    """Reads link, e-switch and route data from sysfs and procfs."""

    def __init__(self, sys_root: str | Path = "/sys", proc_root: str | Path = "/proc") -> None:
        self._sys = Path(sys_root)
        self._proc = Path(proc_root)

    def _net_dir(self, if_name: str) -> Path:
        return self._sys / "class" / "net" / if_name

    def get_link_attrs(self, if_name: str) -> LinkAttrs:
        net_dir = self._net_dir(if_name)
        if not if_name or not net_dir.exists():
            raise ProviderError(
                f"error getting link attributes for net device {if_name} link not found"
            )
        link_type = _read_int(net_dir / "type")
        return LinkAttrs(
            name=if_name,
            index=_read_int(net_dir / "ifindex"),
            mtu=_read_int(net_dir / "mtu"),
            encap_type=_ENCAP_TYPES.get(link_type, "unknown"),
            hardware_addr=_read(net_dir / "address") or "",
            oper_state=_read(net_dir / "operstate") or "",
        )

    def get_devlink_eswitch_attrs(self, pf_addr: str) -> EswitchAttrs:
        if pf_addr:
            net_dir = self._sys / "bus" / "pci" / "devices" / pf_addr / "net"
            for mode_file in sorted(net_dir.glob("*/compat/devlink/mode")):
                mode = _read(mode_file)
                if mode is None:
                    continue
                devlink_dir = mode_file.parent
                return EswitchAttrs(
                    mode=mode,
                    inline_mode=_read(devlink_dir / "inline") or "",
                    encap_mode=_read(devlink_dir / "encap") or "",
                )
        raise ProviderError(
            f"error getting devlink device attributes for net device {pf_addr} "
            "devlink device not found"
        )

    def get_ipv4_routes(self, if_name: str) -> list[Route]:
        if not if_name or not self._net_dir(if_name).exists():
            raise ProviderError(f"link {if_name} not found")
        try:
            lines = (self._proc / "net" / "route").read_text().splitlines()
        except OSError as exc:
            raise ProviderError(f"cannot read routing table: {exc}") from exc
        routes = []
        for line in lines[1:]:
            cols = line.split()
            if len(cols) < 8 or cols[0] != if_name:
                continue
            try:
                dest = _hex_ipv4(cols[1])
                gateway = _hex_ipv4(cols[2])
                prefix = ipaddress.IPv4Network(f"0.0.0.0/{_hex_ipv4(cols[7])}").prefixlen
                metric = int(cols[6])
            except ValueError:
                continue
            default = dest == ipaddress.IPv4Address(0) and prefix == 0
            routes.append(
                Route(
                    dst=None if default else ipaddress.IPv4Network((dest, prefix), strict=False),
                    gateway=None if gateway == ipaddress.IPv4Address(0) else gateway,
                    priority=metric,
                    link_name=if_name,
                )
            )
        return routes


class SysfsSriovnetProvider:
    """Finds SR-IOV representors through sysfs."""

    def __init__(self, sys_root: str | Path = "/sys") -> None:
        self._sys = Path(sys_root)

    def get_uplink_representor(self, vf_pci_address: str) -> str:
        pf_net = self._sys / "bus" / "pci" / "devices" / vf_pci_address / "physfn" / "net"
        if not pf_net.is_dir():
            raise ProviderError(f"failed to lookup physical function net devices of {vf_pci_address}")
        for dev in sorted(pf_net.iterdir()):
            port = _read(dev / "phys_port_name")
            switch_id = _read(dev / "phys_switch_id")
            if port and switch_id and _UPLINK_PORT.fullmatch(port):
                return dev.name
        raise ProviderError(f"uplink for {vf_pci_address} not found")


class _Registry:
    """The providers currently in use."""

    def __init__(self) -> None:
        self.netlink: NetlinkProvider = SysfsNetlinkProvider()
        self.sriovnet: SriovnetProvider = SysfsSriovnetProvider()


_registry = _Registry()


def get_netlink_provider() -> NetlinkProvider:
    """Return the provider in use for link data."""
    return _registry.netlink


def set_netlink_provider(provider: NetlinkProvider) -> NetlinkProvider:
    """Replace the provider used for link data and return the previous one."""
    previous = _registry.netlink
    _registry.netlink = provider
    return previous


def get_sriovnet_provider() -> SriovnetProvider:
    """Return the provider in use for representor data."""
    return _registry.sriovnet


def set_sriovnet_provider(provider: SriovnetProvider) -> SriovnetProvider:
    """Replace the provider used for representor data and return the previous one."""
    previous = _registry.sriovnet
    _registry.sriovnet = provider
    return previous