"""Selectors that narrow a list of host devices down to a resource pool."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any

log = logging.getLogger(__name__)

_INDEX_SEPARATOR = "#"
_RANGE_SEPARATOR = "-"
_DECIMAL = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1


class DeviceSelector(ABC):
    """Keeps the devices whose attribute matches one of the configured values."""

    def __init__(self, values: Iterable[str]) -> None:
        self.values = list(values)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.values!r})"

    def filter(self, devices: Iterable[Any]) -> list[Any]:
        """Return the devices this selector accepts, in their original order."""
        return [dev for dev in devices if self._accepts(dev)]

    @abstractmethod
    def _accepts(self, device: Any) -> bool:
        """Return True if the device belongs in the filtered list."""


class _AttributeSelector(DeviceSelector):
    """Accepts devices whose attribute equals one of the values exactly."""

    _attribute = ""

    def _accepts(self, device: Any) -> bool:
        return getattr(device, self._attribute) in self.values


class VendorSelector(_AttributeSelector):
    """Selects devices by vendor ID."""

    _attribute = "vendor"


class DeviceCodeSelector(_AttributeSelector):
    """Selects devices by device code."""

    _attribute = "device_code"


class DriverSelector(_AttributeSelector):
    """Selects devices by bound driver name."""

    _attribute = "driver"


class PciAddressSelector(_AttributeSelector):
    """Selects PCI devices by PCI address."""

    _attribute = "pci_addr"


class AcpiIndexSelector(_AttributeSelector):
    """Selects PCI devices by ACPI index."""

    _attribute = "acpi_index"


class LinkTypeSelector(_AttributeSelector):
    """Selects network devices by link type."""

    _attribute = "link_type"


class AuxTypeSelector(_AttributeSelector):
    """Selects auxiliary network devices by auxiliary type."""

    _attribute = "aux_type"


class _IndexedSelector(DeviceSelector):
    """Accepts devices whose parent matches an entry, optionally limited by function index."""

    _attribute = ""

    def _accepts(self, device: Any) -> bool:
        parent = getattr(device, self._attribute)
        if not parent:
            return False
        selector = find_item(self.values, parent)
        return selector is not None and is_selected(device.func_id, selector)


class PfNameSelector(_IndexedSelector):
    """Selects network devices by PF net device name, e.g. ``ens2f1#0,3-5``."""

    _attribute = "pf_net_name"


class RootDeviceSelector(_IndexedSelector):
    """Selects network devices by PF PCI address, e.g. ``0000:86:00.2#0-2``."""

    _attribute = "pf_pci_addr"


class DdpSelector(DeviceSelector):
    """Selects PCI network devices by running DDP profile."""

    def _accepts(self, device: Any) -> bool:
        profile = device.ddp_profiles
        return bool(profile) and profile in self.values


def find_item(hay: Sequence[str], needle: str) -> str | None:
    """Return the first entry whose part before ``#`` equals ``needle``, ignoring case."""
    folded = needle.casefold()
    for item in hay:
        if item.split(_INDEX_SEPARATOR)[0].casefold() == folded:
            return item
    return None


def _atoi(text: str) -> int | None:
    if not _DECIMAL.fullmatch(text):
        return None
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        return None
    return value


def is_selected(dev_idx: int, selector: str) -> bool:
    """Return True if function index ``dev_idx`` is covered by ``selector``.

    A selector without ``#`` covers every index. Otherwise the part after ``#``
    is a comma separated list of indexes and inclusive ``start-end`` ranges.
    """
    if _INDEX_SEPARATOR not in selector:
        return True
    parts = selector.split(_INDEX_SEPARATOR)
    if len(parts) != 2:
        log.warning(
            "Failed to parse %s PF (name|address) selector, "
            "probably incorrect separator character usage",
            selector,
        )
        return False
    for entry in parts[1].split(","):
        if _RANGE_SEPARATOR in entry:
            bounds = entry.split(_RANGE_SEPARATOR)
            if len(bounds) != 2:
                log.warning(
                    "Failed to parse %s PF (name|address) selector, "
                    "probably incorrect range character usage",
                    selector,
                )
                return False
            start = _atoi(bounds[0])
            if start is None:
                log.warning(
                    "Failed to parse %s PF (name|address) selector, start range is incorrect",
                    selector,
                )
                return False
            end = _atoi(bounds[1])
            if end is None:
                log.warning(
                    "Failed to parse %s PF (name|address) selector, end range is incorrect",
                    selector,
                )
                return False
            if start <= dev_idx <= end:
                return True
        else:
            index = _atoi(entry)
            if index is None:
                log.warning(
                    "Failed to parse %s PF (name|address) selector, index is incorrect",
                    selector,
                )
                return False
            if dev_idx == index:
                return True
    return False