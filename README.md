# sriovplug

Building blocks for finding SR-IOV network devices on a Linux host and
grouping them into resource pools. The package has no dependencies beyond the
standard library.

## Modules

### `sriovplug.sysfs`

Answers questions about PCI devices from `/sys/bus/pci/devices`:

- PF/VF relations: `get_pf_addr`, `get_pf_name`, `is_sriov_pf`,
  `is_sriov_vf`, `get_vf_list`, `get_vf_id`, `get_pci_addr_from_vf_id`.
- VF counts: `get_vf_configured`, `get_sriov_vf_capacity`, `sriov_configured`.
- Device details: `get_dev_node` (NUMA node, `-1` if unknown),
  `get_driver_name`, `get_net_names`, `get_acpi_index`,
  `is_netlink_status_up`, `get_pf_eswitch_mode`, `has_default_route`.
- Device files: `get_vfio_device_file` returns a `(host, container)` pair;
  the host path uses the `noiommu-` group when the IOMMU group is named
  `vfio-noiommu`. `get_uio_device_file` returns the UIO device file.
- Validation and parsing: `valid_pci_addr` accepts the long
  (`0000:03:00.0`) or short (`03:00.0`) form, returns the long form, and
  checks that the device exists. `valid_resource_name`, `parse_device_id`
  (hexadecimal, signed 64-bit) and `parse_aux_device_type`
  (`<driver>.<type>.<id>` gives `<type>`).
- Names for display: `normalize_vendor_name` crops to 20 bytes and
  `normalize_product_name` crops to 40 bytes, each ending in `...`.
- `detect_plugin_watch_mode(sock_dir)` tells whether a directory exists.
- `set_sysfs_root(root)` makes the module read `<root>/sys/bus/pci/devices`
  instead, which is useful for tests against a fake tree.

Failures raise `SysfsError`.

### `sriovplug.providers`

Replaceable sources of link, e-switch, route and representor data:

- `SysfsNetlinkProvider` reads link attributes from `/sys/class/net`. It reads
  the e-switch mode from `compat/devlink/mode` under a PF's net devices, and
  IPv4 routes from `/proc/net/route`. A route whose `dst` is `None` is the
  default route.
- `SysfsSriovnetProvider.get_uplink_representor` picks the PF net device whose
  `phys_port_name` looks like `p0`, `p1`, … and that has a `phys_switch_id`.
- `get_netlink_provider` / `set_netlink_provider` and
  `get_sriovnet_provider` / `set_sriovnet_provider` return or swap the
  provider in use. The setters return the previous provider. Any object with
  the methods of the `NetlinkProvider` or `SriovnetProvider` protocol will do.

Failures raise `ProviderError`.

### `sriovplug.ddp`

- `get_ddp_profiles(dev)` runs `ddptool -l -a -j -s <dev>` and returns the
  name of the running DDP profile.
- `ddp_name_from_output(data)` parses that tool's JSON report.
- `DdpInfo.from_json` gives the whole report as dataclasses.

Failures raise `DdpError`: the tool is missing, the tool exits non-zero, the
output is not valid JSON, or the report holds no profile name.

### `sriovplug.selectors`

Each selector takes a list of values. Its `filter(devices)` keeps the
matching devices in their original order:

| Selector | Device attribute |
| --- | --- |
| `VendorSelector` | `vendor` |
| `DeviceCodeSelector` | `device_code` |
| `DriverSelector` | `driver` |
| `PciAddressSelector` | `pci_addr` |
| `AcpiIndexSelector` | `acpi_index` |
| `LinkTypeSelector` | `link_type` |
| `AuxTypeSelector` | `aux_type` |
| `DdpSelector` | `ddp_profiles` (empty never matches) |
| `PfNameSelector` | `pf_net_name` with `func_id` |
| `RootDeviceSelector` | `pf_pci_addr` with `func_id` |

`PfNameSelector` and `RootDeviceSelector` match the parent name without regard
to case. They accept an optional function list after `#`, such as
`"ens2f1#0,3-5,7"`, where ranges are inclusive. The helpers behind them are
`find_item` and `is_selected`. A malformed index list is logged and selects
nothing.

### `sriovplug.pool`

`ResourcePool(config, device_pool)` holds the devices of one resource, keyed
by device ID. It offers:

- `get_devices()`: the kubelet-facing `Device` of each device.
- `get_device_specs(ids)`: device specs with duplicate host paths dropped.
- `get_mounts(ids)`: the mounts of the given devices.
- `get_envs(prefix, ids)`: returns `PCIDEVICE_<PREFIX>_<NAME>` (a
  comma-separated list of IDs) and `PCIDEVICE_<PREFIX>_<NAME>_INFO` (JSON of
  each device's environment info). Dots become underscores and the names are
  upper case.

Unknown IDs are skipped. `probe()` always returns `False`.

### `sriovplug.types`

The configuration and device model:

- `ResourceConfig` with `from_dict` / `to_dict`, and
  `ResourceConfList.from_json` for a `{"resourceList": [...]}` document.
- The selector dataclasses: `NetDeviceSelectors`, `AccelDeviceSelectors`,
  `AuxNetDeviceSelectors` and their bases.
- `DeviceType` and `VdpaType`.
- `Device`, `DeviceSpec` and `Mount`.
- The device protocols `HostDevice`, `PciDevice`, `NetDevice`,
  `PciNetDevice` and `AuxNetDevice`.

## Example

```python
from dataclasses import dataclass

from sriovplug import sysfs
from sriovplug.selectors import DriverSelector, PfNameSelector

addr = sysfs.valid_pci_addr("03:00.0")   # "0000:03:00.0" if the device exists
vfs = sysfs.get_vf_list(addr)

@dataclass
class Vf:
    pf_net_name: str
    func_id: int
    driver: str

devices = [Vf("ens2f1", 0, "vfio-pci"), Vf("ens2f1", 1, "vfio-pci"), Vf("ens2f1", 4, "iavf")]
selected = PfNameSelector(["ens2f1#0,3-5"]).filter(devices)
selected = DriverSelector(["vfio-pci"]).filter(selected)   # only the VF with func_id 0
```

## What it does not do

The package provides no kubelet device-plugin server, registration or gRPC
endpoint, and no command-line program. It does not scan the PCI bus to build
device objects. Selectors and `ResourcePool` work on whatever device objects
you supply. It does not write CDI specs or device-info files:
`store_device_info_file` and `clean_device_info_file` only record the prefix
in memory.

## Running the tests

```
pip install -e .[test]
pytest
```