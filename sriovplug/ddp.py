"""Reading the running Dynamic Device Personalization profile of a NIC."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from typing import Any


class DdpError(Exception):
    """Raised when a DDP profile cannot be determined."""


def _lookup(obj: dict[str, Any], key: str) -> Any:
    if key in obj:
        return obj[key]
    folded = key.casefold()
    for name, value in obj.items():
        if name.casefold() == folded:
            return value
    return None


def _section(obj: dict[str, Any], key: str) -> dict[str, Any]:
    value = _lookup(obj, key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DdpError(f"field {key!r} must be an object")
    return value


def _text(obj: dict[str, Any], key: str) -> str:
    value = _lookup(obj, key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DdpError(f"field {key!r} must be a string")
    return value


@dataclass(frozen=True)
class DdpPackage:
    """The DDP profile loaded on a device."""

    track_id: str = ""
    version: str = ""
    name: str = ""


@dataclass(frozen=True)
class DdpInventory:
    """DDP details of one device."""

    device: str = ""
    address: str = ""
    name: str = ""
    display: str = ""
    package: DdpPackage = field(default_factory=DdpPackage)


@dataclass(frozen=True)
class DdpInfo:
    """Top level of the ddptool JSON report."""

    inventory: DdpInventory = field(default_factory=DdpInventory)

    @classmethod
    def from_json(cls, data: str | bytes) -> DdpInfo:
        try:
            doc = json.loads(data)
        except ValueError as exc:
            raise DdpError(f"invalid ddptool output: {exc}") from exc
        if doc is None:
            return cls()
        if not isinstance(doc, dict):
            raise DdpError("ddptool output must be a JSON object")
        inv = _section(doc, "DDPInventory")
        pkg = _section(inv, "DDPpackage")
        return cls(
            DdpInventory(
                device=_text(inv, "device"),
                address=_text(inv, "address"),
                name=_text(inv, "name"),
                display=_text(inv, "display"),
                package=DdpPackage(
                    track_id=_text(pkg, "track_id"),
                    version=_text(pkg, "version"),
                    name=_text(pkg, "name"),
                ),
            )
        )


def ddp_name_from_output(data: str | bytes) -> str:
    """Return the profile name from ddptool JSON output."""
    name = DdpInfo.from_json(data).inventory.package.name
    if not name:
        raise DdpError("DDP profile name not found")
    return name


def get_ddp_profiles(dev: str) -> str:
    """Return the DDP profile running on the device at PCI address ``dev``."""
    command = ["ddptool", "-l", "-a", "-j", "-s", dev]
    try:
        result = subprocess.run(
            command, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL, check=False
        )
    except OSError as exc:
        raise DdpError(f"failed to run ddptool: {exc}") from exc
    if result.returncode != 0:
        raise DdpError(f"ddptool exited with status {result.returncode}")
    return ddp_name_from_output(result.stdout)