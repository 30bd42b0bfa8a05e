import ipaddress
import os

import pytest

from sriovplug import sysfs
from sriovplug.providers import (
    EswitchAttrs,
    ProviderError,
    Route,
    get_netlink_provider,
    get_sriovnet_provider,
    set_netlink_provider,
    set_sriovnet_provider,
)
from sriovplug.sysfs import SysfsError

PCI = "sys/bus/pci/devices"


@pytest.fixture(autouse=True)
def _restore_state():
    netlink = get_netlink_provider()
    sriovnet = get_sriovnet_provider()
    yield
    set_netlink_provider(netlink)
    set_sriovnet_provider(sriovnet)
    sysfs.set_sysfs_root("/")


def make_fs(root, dirs=(), files=None, symlinks=None):
    for d in dirs:
        (root / d).mkdir(parents=True, exist_ok=True)
    for name, body in (files or {}).items():
        (root / name).write_bytes(body)
    for link, target in (symlinks or {}).items():
        os.symlink(target, root / link)
    sysfs.set_sysfs_root(root)
    return root


class FakeNetlink:
    def __init__(self, modes=None, default_mode=None, routes=None, route_error=None):
        self.modes = modes or {}
        self.default_mode = default_mode
        self.routes = routes or []
        self.route_error = route_error

    def get_link_attrs(self, if_name):
        raise ProviderError("not available")

    def get_devlink_eswitch_attrs(self, pf_addr):
        if pf_addr in self.modes:
            mode = self.modes[pf_addr]
        elif self.default_mode is not None:
            mode = self.default_mode
        else:
            raise ProviderError("unknown error")
        if isinstance(mode, Exception):
            raise mode
        return EswitchAttrs(mode=mode)

    def get_ipv4_routes(self, if_name):
        if self.route_error is not None:
            raise self.route_error
        return list(self.routes)


class FakeSriovnet:
    def get_uplink_representor(self, vf_pci_address):
        return "fakeSwitchdevPF"


# get_pf_addr

def test_pf_addr_of_pf_is_empty(tmp_path):
    make_fs(tmp_path)
    assert sysfs.get_pf_addr("0000:00:00.0") == ""


def test_pf_addr_physfn_not_symlink(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:00:00.0"],
        files={f"{PCI}/0000:00:00.0/physfn": b"invalid content"},
    )
    with pytest.raises(SysfsError):
        sysfs.get_pf_addr("0000:00:00.0")


def test_pf_addr_of_vf(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:00:00.0", f"{PCI}/0000:00:00.1"],
        symlinks={f"{PCI}/0000:00:00.1/physfn": "../0000:00:00.0"},
    )
    assert sysfs.get_pf_addr("0000:00:00.1") == "0000:00:00.0"


# is_sriov_pf / is_sriov_vf

def test_is_sriov_pf_true(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:00:00.0"],
        files={f"{PCI}/0000:00:00.0/sriov_totalvfs": b"0"},
    )
    assert sysfs.is_sriov_pf("0000:00:00.0") is True


def test_is_sriov_pf_false(tmp_path):
    make_fs(tmp_path, dirs=[f"{PCI}/0000:00:00.0"])
    assert sysfs.is_sriov_pf("0000:00:00.0") is False


def test_is_sriov_vf_true(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:00:00.0", f"{PCI}/0000:00:00.1"],
        symlinks={f"{PCI}/0000:00:00.1/physfn": "../0000:00:00.0"},
    )
    assert sysfs.is_sriov_vf("0000:00:00.1") is True


def test_is_sriov_vf_false(tmp_path):
    make_fs(tmp_path, dirs=[f"{PCI}/0000:00:00.1"])
    assert sysfs.is_sriov_vf("0000:00:00.1") is False


# get_vf_configured

@pytest.mark.parametrize(
    "files, expected",
    [
        ({}, 0),
        ({f"{PCI}/0000:00:00.1/sriov_numvfs": b"invalid content"}, 0),
        ({f"{PCI}/0000:00:00.1/sriov_numvfs": b"32"}, 32),
    ],
)
def test_vf_configured(tmp_path, files, expected):
    make_fs(tmp_path, dirs=[f"{PCI}/0000:00:00.1"], files=files)
    assert sysfs.get_vf_configured("0000:00:00.1") == expected


# get_vf_list

def test_vf_list_missing_pf(tmp_path):
    make_fs(tmp_path)
    with pytest.raises(SysfsError):
        sysfs.get_vf_list("0000:00:00.1")


def test_vf_list_returned(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:00.0", f"{PCI}/0000:01:10.0"],
        symlinks={f"{PCI}/0000:01:00.0/virtfn0": "../0000:01:10.0"},
    )
    assert sysfs.get_vf_list("0000:01:00.0") == ["0000:01:10.0"]


def test_vf_list_empty(tmp_path):
    make_fs(tmp_path, dirs=[f"{PCI}/0000:00:00.3"])
    assert sysfs.get_vf_list("0000:00:00.3") == []


# get_pci_addr_from_vf_id

def test_pci_addr_from_vf_id(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:00.0", f"{PCI}/0000:01:10.0"],
        symlinks={f"{PCI}/0000:01:00.0/virtfn0": "../0000:01:10.0"},
    )
    assert sysfs.get_pci_addr_from_vf_id("0000:01:00.0", 0) == "0000:01:10.0"


def test_pci_addr_from_vf_id_missing(tmp_path):
    make_fs(tmp_path)
    with pytest.raises(SysfsError):
        sysfs.get_pci_addr_from_vf_id("0000:01:00.0", 0)


def test_pci_addr_from_vf_id_not_symlink(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:00.0"],
        files={f"{PCI}/0000:01:00.0/virtfn0": b"junk"},
    )
    with pytest.raises(SysfsError):
        sysfs.get_pci_addr_from_vf_id("0000:01:00.0", 0)


# get_sriov_vf_capacity

@pytest.mark.parametrize(
    "files, expected",
    [
        ({f"{PCI}/0000:01:00.0/sriov_totalvfs": b"32"}, 32),
        ({}, 0),
        ({f"{PCI}/0000:01:00.0/sriov_totalvfs": b"junk"}, 0),
    ],
)
def test_vf_capacity(tmp_path, files, expected):
    make_fs(tmp_path, dirs=[f"{PCI}/0000:01:00.0"], files=files)
    assert sysfs.get_sriov_vf_capacity("0000:01:00.0") == expected


# get_dev_node

def test_dev_node_missing(tmp_path):
    make_fs(tmp_path)
    assert sysfs.get_dev_node("0000:00:00.0") == -1


@pytest.mark.parametrize(
    "content, expected",
    [(b"invalid content", -1), (b"1", 1), (b"0", 0), (b"-1", -1)],
)
def test_dev_node(tmp_path, content, expected):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:00:00.1"],
        files={f"{PCI}/0000:00:00.1/numa_node": content},
    )
    assert sysfs.get_dev_node("0000:00:00.1") == expected


# is_netlink_status_up

@pytest.mark.parametrize("second, expected", [(b"up", True), (b"down", False)])
def test_netlink_status(tmp_path, second, expected):
    base = f"{PCI}/0000:01:00.0/net"
    make_fs(
        tmp_path,
        dirs=[f"{base}/eth0", f"{base}/eth1"],
        files={f"{base}/eth0/operstate": b"up", f"{base}/eth1/operstate": second},
    )
    assert sysfs.is_netlink_status_up("0000:01:00.0") is expected


# valid_pci_addr

@pytest.mark.parametrize("addr", ["0000:01:00.0", "01:00.0"])
def test_valid_pci_addr_exists(tmp_path, addr):
    make_fs(tmp_path, dirs=[f"{PCI}/0000:01:00.0"])
    assert sysfs.valid_pci_addr(addr) == "0000:01:00.0"


@pytest.mark.parametrize("addr", ["0000:01:00.0", "01:00.0", "junk"])
def test_valid_pci_addr_fails(tmp_path, addr):
    make_fs(tmp_path)
    with pytest.raises(SysfsError):
        sysfs.valid_pci_addr(addr)


# sriov_configured

def test_sriov_not_configured(tmp_path):
    make_fs(tmp_path)
    assert sysfs.sriov_configured("0000:01:00.0") is False


def test_sriov_configured(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:00.0"],
        files={f"{PCI}/0000:01:00.0/sriov_numvfs": b"32"},
    )
    assert sysfs.sriov_configured("0000:01:00.0") is True


# valid_resource_name

@pytest.mark.parametrize("name, expected", [("sriov-net_0", True), ("junk.net.0", False)])
def test_valid_resource_name(name, expected):
    assert sysfs.valid_resource_name(name) is expected


# get_vfio_device_file

def test_vfio_missing_device(tmp_path):
    make_fs(tmp_path)
    with pytest.raises(SysfsError):
        sysfs.get_vfio_device_file("0000:01:00.0")


def test_vfio_missing_iommu_group(tmp_path):
    make_fs(tmp_path, dirs=[f"{PCI}/0000:01:10.0"])
    with pytest.raises(SysfsError):
        sysfs.get_vfio_device_file("0000:01:10.0")


def test_vfio_iommu_group_not_symlink(tmp_path):
    make_fs(tmp_path, dirs=[f"{PCI}/0000:01:10.0/iommu_group"])
    with pytest.raises(SysfsError):
        sysfs.get_vfio_device_file("0000:01:10.0")


def test_vfio_device_file(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0", "sys/kernel/iommu_groups/1"],
        symlinks={f"{PCI}/0000:01:10.0/iommu_group": "../../../../kernel/iommu_groups/1"},
    )
    assert sysfs.get_vfio_device_file("0000:01:10.0") == ("/dev/vfio/1", "/dev/vfio/1")


def test_vfio_device_file_noiommu(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0", "sys/kernel/iommu_groups/3"],
        files={"sys/kernel/iommu_groups/3/name": b"vfio-noiommu\n"},
        symlinks={f"{PCI}/0000:01:10.0/iommu_group": "../../../../kernel/iommu_groups/3"},
    )
    assert sysfs.get_vfio_device_file("0000:01:10.0") == (
        "/dev/vfio/noiommu-3",
        "/dev/vfio/3",
    )


# get_uio_device_file

def test_uio_missing(tmp_path):
    make_fs(tmp_path)
    with pytest.raises(SysfsError):
        sysfs.get_uio_device_file("0000:01:10.0")


def test_uio_not_a_dir(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0"],
        files={f"{PCI}/0000:01:10.0/uio": b"junk"},
    )
    with pytest.raises(SysfsError):
        sysfs.get_uio_device_file("0000:01:10.0")


def test_uio_device_file(tmp_path):
    make_fs(tmp_path, dirs=[f"{PCI}/0000:01:10.0/uio/uio1"])
    assert sysfs.get_uio_device_file("0000:01:10.0") == "/dev/uio1"


# get_driver_name

def test_driver_missing(tmp_path):
    make_fs(tmp_path)
    with pytest.raises(SysfsError):
        sysfs.get_driver_name("0000:01:10.0")


def test_driver_name(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0", "sys/bus/pci/drivers/fake"],
        symlinks={f"{PCI}/0000:01:10.0/driver": "../../../../bus/pci/drivers/fake"},
    )
    assert sysfs.get_driver_name("0000:01:10.0") == "fake"


# get_net_names

def test_net_names_missing(tmp_path):
    make_fs(tmp_path)
    with pytest.raises(SysfsError):
        sysfs.get_net_names("0000:01:10.0")


def test_net_names_not_a_dir(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0"],
        files={f"{PCI}/0000:01:10.0/net": b"junk"},
    )
    with pytest.raises(SysfsError):
        sysfs.get_net_names("0000:01:10.0")


def test_net_names_single(tmp_path):
    make_fs(tmp_path, dirs=[f"{PCI}/0000:01:10.0/net/fake0"])
    assert sysfs.get_net_names("0000:01:10.0") == ["fake0"]


def test_net_names_multiple(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0/net/fake0", f"{PCI}/0000:01:10.0/net/fake1"],
    )
    assert sorted(sysfs.get_net_names("0000:01:10.0")) == ["fake0", "fake1"]


# get_acpi_index

def test_acpi_index_missing(tmp_path):
    make_fs(tmp_path, dirs=[f"{PCI}/0000:01:10.0"])
    assert sysfs.get_acpi_index("0000:01:10.0") == ""


def test_acpi_index(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0"],
        files={f"{PCI}/0000:01:10.0/acpi_index": b"101\n"},
    )
    assert sysfs.get_acpi_index("0000:01:10.0") == "101"


# get_pf_name (legacy)

def test_pf_name_legacy_device_missing(tmp_path):
    set_netlink_provider(FakeNetlink(default_mode="legacy"))
    make_fs(tmp_path)
    assert sysfs.get_pf_name("0000:01:10.0") == ""


def test_pf_name_legacy_vf(tmp_path):
    set_netlink_provider(FakeNetlink(default_mode="legacy"))
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0", f"{PCI}/0000:01:00.0/net/fakePF"],
        symlinks={f"{PCI}/0000:01:10.0/physfn": "../0000:01:00.0"},
    )
    assert sysfs.get_pf_name("0000:01:10.0") == "fakePF"


def test_pf_name_legacy_no_interface(tmp_path):
    set_netlink_provider(FakeNetlink(default_mode="legacy"))
    make_fs(tmp_path, dirs=[f"{PCI}/0000:01:10.0/physfn/net"])
    with pytest.raises(SysfsError):
        sysfs.get_pf_name("0000:01:10.0")


def test_pf_name_legacy_net_not_dir(tmp_path):
    set_netlink_provider(FakeNetlink(default_mode="legacy"))
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0/physfn"],
        files={f"{PCI}/0000:01:10.0/physfn/net": b"junk"},
    )
    with pytest.raises(SysfsError):
        sysfs.get_pf_name("0000:01:10.0")


# get_pf_name (switchdev and fallbacks)

def _switchdev_provider():
    return FakeNetlink(
        modes={
            "devlinkDeviceSwitchdev": "switchdev",
            "nonDevlinkDevice": ProviderError(
                "error getting devlink device attributes for net device"
            ),
            "nonSriovDevice": "",
        }
    )


def test_pf_name_switchdev(tmp_path):
    set_netlink_provider(_switchdev_provider())
    set_sriovnet_provider(FakeSriovnet())
    make_fs(
        tmp_path,
        dirs=[
            f"{PCI}/0000:01:10.0",
            f"{PCI}/devlinkDeviceSwitchdev/net/fakePF",
            f"{PCI}/devlinkDeviceSwitchdev/net/fakeVF",
        ],
        symlinks={f"{PCI}/0000:01:10.0/physfn": "../devlinkDeviceSwitchdev"},
    )
    assert sysfs.get_pf_name("0000:01:10.0") == "fakeSwitchdevPF"


@pytest.mark.parametrize("pf", ["nonDevlinkDevice", "nonSriovDevice"])
def test_pf_name_falls_back_to_sysfs(tmp_path, pf):
    set_netlink_provider(_switchdev_provider())
    set_sriovnet_provider(FakeSriovnet())
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0", f"{PCI}/{pf}/net/ens1"],
        symlinks={f"{PCI}/0000:01:10.0/physfn": f"../{pf}"},
    )
    assert sysfs.get_pf_name("0000:01:10.0") == "ens1"


def test_pf_name_unknown_devlink_error(tmp_path):
    set_netlink_provider(_switchdev_provider())
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0", f"{PCI}/unknownDevice/net/ens1"],
        symlinks={f"{PCI}/0000:01:10.0/physfn": "../unknownDevice"},
    )
    with pytest.raises(ProviderError, match="unknown error"):
        sysfs.get_pf_name("0000:01:10.0")


def test_pf_eswitch_mode(tmp_path):
    set_netlink_provider(_switchdev_provider())
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0", f"{PCI}/devlinkDeviceSwitchdev"],
        symlinks={f"{PCI}/0000:01:10.0/physfn": "../devlinkDeviceSwitchdev"},
    )
    assert sysfs.get_pf_eswitch_mode("0000:01:10.0") == "switchdev"


# get_vf_id

def test_vf_id_device_missing(tmp_path):
    make_fs(tmp_path)
    assert sysfs.get_vf_id("0000:01:10.0") == -1


def test_vf_id_no_pf_link(tmp_path):
    make_fs(tmp_path, dirs=[f"{PCI}/0000:01:10.0"])
    assert sysfs.get_vf_id("0000:01:10.0") == -1


def test_vf_id_pf_without_vfs(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0", f"{PCI}/0000:01:00.0"],
        symlinks={f"{PCI}/0000:01:10.0/physfn": "../0000:01:00.0"},
    )
    assert sysfs.get_vf_id("0000:01:10.0") == -1


def test_vf_id_not_found(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0", f"{PCI}/0000:01:00.0"],
        symlinks={
            f"{PCI}/0000:01:10.0/physfn": "../0000:01:00.0",
            f"{PCI}/0000:01:00.0/virtfn0": "../0000:01:08.0",
        },
    )
    assert sysfs.get_vf_id("0000:01:10.0") == -1


def test_vf_id_found(tmp_path):
    make_fs(
        tmp_path,
        dirs=[f"{PCI}/0000:01:10.0", f"{PCI}/0000:01:00.0"],
        symlinks={
            f"{PCI}/0000:01:10.0/physfn": "../0000:01:00.0",
            f"{PCI}/0000:01:00.0/virtfn0": "../0000:01:08.0",
            f"{PCI}/0000:01:00.0/virtfn1": "../0000:01:09.0",
            f"{PCI}/0000:01:00.0/virtfn2": "../0000:01:10.0",
        },
    )
    assert sysfs.get_vf_id("0000:01:10.0") == 2


# has_default_route

def test_default_route_device_missing(tmp_path):
    set_netlink_provider(FakeNetlink())
    make_fs(tmp_path)
    with pytest.raises(SysfsError):
        sysfs.has_default_route("0000:00:00.0")


NON_DEFAULT = Route(dst=ipaddress.IPv4Network("10.0.0.0/8"))


@pytest.mark.parametrize(
    "dirs, routes, expected",
    [
        ([f"{PCI}/0000:01:10.0/net"], [], False),
        ([f"{PCI}/0000:01:10.0/net/fake0"], [], False),
        ([f"{PCI}/0000:01:10.0/net/fake0", f"{PCI}/0000:01:10.0/net/fake1"], [], False),
        ([f"{PCI}/0000:01:10.0/net/fake0"], [NON_DEFAULT, NON_DEFAULT], False),
        ([f"{PCI}/0000:01:10.0/net/fake0"], [Route(dst=None)], True),
    ],
)
def test_default_route(tmp_path, dirs, routes, expected):
    set_netlink_provider(FakeNetlink(routes=routes))
    make_fs(tmp_path, dirs=dirs)
    assert sysfs.has_default_route("0000:01:10.0") is expected


def test_default_route_provider_error_is_skipped(tmp_path):
    set_netlink_provider(FakeNetlink(route_error=ProviderError("boom")))
    make_fs(tmp_path, dirs=[f"{PCI}/0000:01:10.0/net/fake0"])
    assert sysfs.has_default_route("0000:01:10.0") is False


# detect_plugin_watch_mode

def test_detect_plugin_watch_mode(tmp_path):
    assert sysfs.detect_plugin_watch_mode(str(tmp_path)) is True
    assert sysfs.detect_plugin_watch_mode(str(tmp_path / "missing")) is False


# name normalisation

@pytest.mark.parametrize(
    "name, expected",
    [
        ("short_vendor_name", "short_vendor_name"),
        ("veeery_looong_veendor_name", "veeery_looong_vee..."),
    ],
)
def test_normalize_vendor_name(name, expected):
    assert sysfs.normalize_vendor_name(name) == expected


@pytest.mark.parametrize(
    "name, expected",
    [
        ("short_product_name", "short_product_name"),
        (
            "veeeeeeery_loooooooong_prooooooooduct_naaaaaaaaaame",
            "veeeeeeery_loooooooong_prooooooooduct...",
        ),
    ],
)
def test_normalize_product_name(name, expected):
    assert sysfs.normalize_product_name(name) == expected


# parse_device_id

def test_parse_device_id():
    assert sysfs.parse_device_id("c0fe") == 0xC0FE


@pytest.mark.parametrize("device_id", ["", "not_a_number"])
def test_parse_device_id_invalid(device_id):
    with pytest.raises(ValueError):
        sysfs.parse_device_id(device_id)


# parse_aux_device_type

@pytest.mark.parametrize(
    "device_id, expected",
    [
        ("0000:12:34.0", ""),
        ("driver_name.type.id", ""),
        ("driver_name.type.-4", ""),
        ("driver_name.type.123", "type"),
    ],
)
def test_parse_aux_device_type(device_id, expected):
    assert sysfs.parse_aux_device_type(device_id) == expected