"""Queries about PCI and SR-IOV devices answered from sysfs."""

from __future__ import annotations

import glob
import logging
import os
import re
from pathlib import Path

from .providers import ProviderError, get_netlink_provider, get_sriovnet_provider

log = logging.getLogger(__name__)

_DEV_DIR = "/dev"
_TOTAL_VF_FILE = "sriov_totalvfs"
_CONFIGURED_VF_FILE = "sriov_numvfs"
_ESWITCH_MODE_SWITCHDEV = "switchdev"
_MAX_VENDOR_NAME = 20
_MAX_PRODUCT_NAME = 40

_LONG_PCI_ID = re.compile(r"0{4}:[0-9a-f]{2}:[0-9a-f]{2}.[0-7]")
_SHORT_PCI_ID = re.compile(r"[0-9a-f]{2}:[0-9a-f]{2}.[0-7]")
_RESOURCE_NAME = re.compile(r"[a-zA-Z0-9_-]+")
_DECIMAL = re.compile(r"[+-]?[0-9]+")
_HEX = re.compile(r"[+-]?[0-9a-fA-F]+")

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_sys_bus_pci = "/sys/bus/pci/devices"


class SysfsError(Exception):
    """Raised when device information cannot be read from sysfs."""


def set_sysfs_root(root: str | Path) -> None:
    """Read sysfs below ``root`` instead of the real filesystem root."""
    global _sys_bus_pci
    _sys_bus_pci = os.path.join(os.fspath(root), "sys", "bus", "pci", "devices")


def _dev_path(*parts: str) -> str:
    return os.path.join(_sys_bus_pci, *parts)


def _parse_decimal(text: str) -> int | None:
    text = text.strip()
    if not _DECIMAL.fullmatch(text):
        return None
    return int(text)


def _read_int(path: str, default: int) -> int:
    try:
        with open(path, "rb") as fh:
            raw = fh.read()
    except OSError:
        return default
    value = _parse_decimal(raw.decode(errors="replace"))
    return default if value is None else value


def _resolve(path: str) -> str:
    """Resolve every symlink in ``path``; raise OSError if the target is missing."""
    return os.path.realpath(path, strict=True)


def detect_plugin_watch_mode(sock_dir: str) -> bool:
    """Return True if the plugin registry directory exists."""
    return os.path.exists(sock_dir)


def get_pf_addr(pci_addr: str) -> str:
    """Return the PF PCI address of a VF, or "" if the device is not a VF."""
    try:
        target = os.readlink(_dev_path(pci_addr, "physfn"))
    except FileNotFoundError:
        return ""
    except OSError as exc:
        raise SysfsError(f"error getting PF for PCI device {pci_addr} {exc}") from exc
    return os.path.basename(target.rstrip("/"))


def get_pf_name(pci_addr: str) -> str:
    """Return the PF net device name of a VF, or "" if the device is not a VF."""
    if not is_sriov_vf(pci_addr):
        return ""

    error: Exception | None = None
    try:
        mode = get_pf_eswitch_mode(pci_addr)
    except (SysfsError, ProviderError) as exc:
        mode, error = "", exc

    if mode == "":
        message = str(error).lower() if error is not None else ""
        if error is None or "error getting devlink device attributes for net device" in message:
            log.info(
                "Devlink query for eswitch mode is not supported for device %s. %s",
                pci_addr,
                error,
            )
        else:
            raise error
    elif mode == _ESWITCH_MODE_SWITCHDEV:
        return get_sriovnet_provider().get_uplink_representor(pci_addr)

    net_dir = _dev_path(pci_addr, "physfn", "net")
    try:
        names = sorted(os.listdir(net_dir))
    except FileNotFoundError:
        return ""
    except OSError as exc:
        raise SysfsError(str(exc)) from exc
    if names:
        return names[0]
    raise SysfsError(f"the PF name is not found for device {pci_addr}")


def is_sriov_pf(pci_addr: str) -> bool:
    """Return True if the device is SR-IOV capable."""
    return os.path.exists(_dev_path(pci_addr, _TOTAL_VF_FILE))


def is_sriov_vf(pci_addr: str) -> bool:
    """Return True if the device links to a physical function."""
    return os.path.exists(_dev_path(pci_addr, "physfn"))


def get_vf_configured(pf: str) -> int:
    """Return the number of VFs configured on a PF, 0 if unknown."""
    return _read_int(_dev_path(pf, _CONFIGURED_VF_FILE), 0)


def get_vf_list(pf: str) -> list[str]:
    """Return the PCI addresses of all VFs of a PF."""
    pf_dir = _dev_path(pf)
    if not os.path.lexists(pf_dir):
        raise SysfsError(
            f"error. Could not get PF directory information for device: {pf}, "
            "Err: no such file or directory"
        )
    vfs = []
    for vf_dir in sorted(glob.glob(os.path.join(glob.escape(pf_dir), "virtfn*"))):
        if not os.path.islink(vf_dir):
            continue
        try:
            vfs.append(os.path.basename(_resolve(vf_dir)))
        except OSError:
            continue
    return vfs


def get_pci_addr_from_vf_id(pf: str, vf: int) -> str:
    """Return the PCI address of VF number ``vf`` of ``pf``."""
    vf_dir = f"{_sys_bus_pci}/{pf}/virtfn{vf}"
    if not os.path.lexists(vf_dir):
        raise SysfsError(
            f"could not get directory information for device: {pf}, VF: {vf}. "
            "Err: no such file or directory"
        )
    if not os.path.islink(vf_dir):
        raise SysfsError(
            f"no symbolic link between virtual function and PCI - Device: {pf}, VF: {vf}"
        )
    try:
        target = os.readlink(vf_dir)
    except OSError as exc:
        raise SysfsError(
            "cannot read symbolic link between virtual function and PCI - "
            f"Device: {pf}, VF: {vf}. Err: {exc}"
        ) from exc
    return target[len("../"):]


def get_sriov_vf_capacity(pf: str) -> int:
    """Return the total number of VFs a PF supports, 0 if unknown."""
    return _read_int(_dev_path(pf, _TOTAL_VF_FILE), 0)


def get_dev_node(pci_addr: str) -> int:
    """Return the NUMA node of a device, -1 if unknown."""
    return _read_int(_dev_path(pci_addr, "numa_node"), -1)


def is_netlink_status_up(dev: str) -> bool:
    """Return False only if a readable operstate holds something other than "up"."""
    pattern = os.path.join(glob.escape(_dev_path(dev, "net")), "*", "operstate")
    for path in glob.glob(pattern):
        try:
            with open(path, "rb") as fh:
                state = fh.read().decode(errors="replace").strip()
        except OSError:
            return False
        if state != "up":
            return False
    return True


def _check_device_exists(addr: str) -> None:
    path = _dev_path(addr)
    if not os.path.lexists(path):
        raise SysfsError(f"error: unable to read device directory {path}")


def valid_pci_addr(addr: str) -> str:
    """Return the long form of a PCI address whose device exists."""
    if _LONG_PCI_ID.fullmatch(addr):
        _check_device_exists(addr)
        return addr
    if _SHORT_PCI_ID.fullmatch(addr):
        addr = "0000:" + addr
        _check_device_exists(addr)
        return addr
    raise SysfsError(f"invalid pci address {addr}")


def sriov_configured(addr: str) -> bool:
    """Return True if at least one VF is configured."""
    return get_vf_configured(addr) > 0


def valid_resource_name(name: str) -> bool:
    """Return True if the name holds only permitted characters."""
    return _RESOURCE_NAME.fullmatch(name) is not None


def get_vfio_device_file(dev: str) -> tuple[str, str]:
    """Return the host and container VFIO device files of a vfio-pci bound device."""
    dev_path = _dev_path(dev)
    if not os.path.lexists(dev_path):
        raise SysfsError(
            f"GetVFIODeviceFile(): Could not get directory information for device: {dev}"
        )
    iommu_dir = os.path.join(dev_path, "iommu_group")
    if not os.path.lexists(iommu_dir):
        raise SysfsError("GetVFIODeviceFile(): unable to find iommu_group")
    if not os.path.islink(iommu_dir):
        raise SysfsError("GetVFIODeviceFile(): invalid symlink to iommu_group")
    try:
        link_name = _resolve(iommu_dir)
    except OSError as exc:
        raise SysfsError(
            f"GetVFIODeviceFile(): error reading symlink to iommu_group {exc}"
        ) from exc

    group = os.path.basename(link_name)
    container = os.path.join(_DEV_DIR, "vfio", group)
    host = container
    try:
        with open(os.path.join(link_name, "name"), "rb") as fh:
            group_name = fh.read().decode(errors="replace").strip()
    except OSError:
        group_name = ""
    if group_name == "vfio-noiommu":
        host = os.path.join(_DEV_DIR, "vfio", "noiommu-" + group)
    return host, container


def get_uio_device_file(dev: str) -> str:
    """Return the UIO device file of a device bound to a UIO driver."""
    uio_dir = _dev_path(dev, "uio")
    if not os.path.lexists(uio_dir):
        raise SysfsError(
            f"GetUIODeviceFile(): could not get directory information for device: {uio_dir}"
        )
    try:
        entries = sorted(os.listdir(uio_dir))
    except OSError as exc:
        raise SysfsError(str(exc)) from exc
    if not entries:
        raise SysfsError(f"GetUIODeviceFile(): no uio device found in {uio_dir}")
    return os.path.join(_DEV_DIR, entries[0])


def get_net_names(pci_addr: str) -> list[str]:
    """Return the net interface names of a PCI device."""
    net_dir = _dev_path(pci_addr, "net")
    if not os.path.lexists(net_dir):
        raise SysfsError(f"GetNetName(): no net directory under pci device {pci_addr}")
    try:
        return sorted(os.listdir(net_dir))
    except OSError as exc:
        raise SysfsError(
            f"GetNetName(): failed to read net directory {net_dir}: {exc}"
        ) from exc


def get_driver_name(pci_addr: str) -> str:
    """Return the driver bound to a PCI device."""
    try:
        target = os.readlink(_dev_path(pci_addr, "driver"))
    except OSError as exc:
        raise SysfsError(f"error getting driver info for device {pci_addr} {exc}") from exc
    return os.path.basename(target.rstrip("/"))


def get_acpi_index(pci_addr: str) -> str:
    """Return the ACPI index of a PCI device, "" if it has none."""
    path = _dev_path(pci_addr, "acpi_index")
    try:
        os.stat(path)
    except FileNotFoundError:
        return ""
    except OSError as exc:
        raise SysfsError(f"error getting ACPI index for device {pci_addr} {exc}") from exc
    try:
        with open(path, "rb") as fh:
            return fh.read().decode(errors="replace").strip()
    except OSError as exc:
        raise SysfsError(f"error getting ACPI index for device {pci_addr} {exc}") from exc


def get_vf_id(pci_addr: str) -> int:
    """Return the index of a VF within its PF, -1 if not found."""
    pf_dir = _dev_path(pci_addr, "physfn")
    try:
        os.lstat(pf_dir)
    except FileNotFoundError:
        return -1
    except OSError as exc:
        raise SysfsError(
            f"could not get PF directory information for VF device: {pci_addr}, Err: {exc}"
        ) from exc

    count = len(glob.glob(os.path.join(glob.escape(pf_dir), "virtfn*")))
    for vf_id in range(count):
        vf_dir = f"{pf_dir}/virtfn{vf_id}"
        if not os.path.islink(vf_dir):
            continue
        try:
            target = _resolve(vf_dir)
        except OSError:
            continue
        if pci_addr in target:
            return vf_id
    return -1


def get_pf_eswitch_mode(pci_addr: str) -> str:
    """Return the e-switch mode of the device's PF (or of the device itself)."""
    try:
        pf_addr = get_pf_addr(pci_addr)
    except SysfsError as exc:
        raise SysfsError(
            f"error getting PF PCI address for device {pci_addr} {exc}"
        ) from exc
    return get_netlink_provider().get_devlink_eswitch_attrs(pf_addr).mode


def has_default_route(pci_addr: str) -> bool:
    """Return True if any interface of the device carries the IPv4 default route."""
    try:
        names = get_net_names(pci_addr)
    except SysfsError as exc:
        raise SysfsError(f"error trying get net device name for device {pci_addr}") from exc
    provider = get_netlink_provider()
    for name in names:
        try:
            routes = provider.get_ipv4_routes(name)
        except ProviderError as exc:
            log.error("failed to get routes for interface: %s, %s", name, exc)
            continue
        for route in routes:
            if route.dst is None:
                log.info("excluding interface %s: default route found: %s", name, route)
                return True
    return False


def _crop(text: str, limit: int) -> str:
    raw = text.encode()
    if len(raw) > limit:
        return raw[: limit - 3].decode(errors="ignore") + "..."
    return text


def normalize_vendor_name(vendor: str) -> str:
    """Crop a vendor name to at most 20 bytes."""
    return _crop(vendor, _MAX_VENDOR_NAME)


def normalize_product_name(product: str) -> str:
    """Crop a product name to at most 40 bytes."""
    return _crop(product, _MAX_PRODUCT_NAME)


def parse_device_id(device_id: str) -> int:
    """Parse a hexadecimal device ID as a signed 64-bit integer."""
    if not _HEX.fullmatch(device_id):
        raise ValueError(f"invalid device ID {device_id!r}")
    value = int(device_id, 16)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"device ID {device_id!r} out of range")
    return value


def parse_aux_device_type(device_id: str) -> str:
    """Return the type part of ``<driver>.<type>.<id>``, or "" if not auxiliary."""
    chunks = device_id.split(".")
    if len(chunks) == 3:
        index = _parse_decimal(chunks[2]) if chunks[2] == chunks[2].strip() else None
        if index is not None and index >= 0:
            return chunks[1]
    return ""