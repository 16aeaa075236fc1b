import pytest

from bluedash.core.device_directory import DeviceDirectory, normalize_mac, parse_devices, parse_info
from bluedash.core.process_runner import ProcessError

from conftest import btctl

PHONE = "AA:BB:CC:DD:EE:01"
SPEAKER = "AA:BB:CC:DD:EE:02"

DEVICES = f"Device {PHONE} Pixel 7\nDevice {SPEAKER} Car Speaker\n"
PHONE_INFO = f"""Device {PHONE} (public)
\tName: Pixel 7
\tAlias: My Pixel
\tPaired: no
\tTrusted: yes
\tBlocked: no
\tConnected: yes
\tRSSI: -58
\tUUID: Audio Sink (0000110b-0000-1000-8000-00805f9b34fb)
"""


def test_parse_devices_ignores_noise():
    out = parse_devices("[NEW] Controller 00:11:22:33:44:55 host\n" + DEVICES + "garbage\n")
    assert out == [{"mac": PHONE, "name": "Pixel 7"}, {"mac": SPEAKER, "name": "Car Speaker"}]


def test_parse_info_fields():
    record = parse_info(PHONE, PHONE_INFO)
    assert record.name == "Pixel 7"
    assert record.alias == "My Pixel"
    assert record.connected and record.trusted
    assert not record.paired and not record.blocked
    assert record.rssi == -58


def test_parse_info_hex_rssi():
    assert parse_info(PHONE, "RSSI: 0xffffffc4 (-60)").rssi == -60
    assert parse_info(PHONE, "Name: x").rssi is None


def test_normalize_mac():
    assert normalize_mac("aa:bb:cc:dd:ee:01") == PHONE
    assert normalize_mac("AA:BB:CC:DD:EE") is None
    assert normalize_mac("AA:BB:CC:DD:EE:01\npower off") is None
    assert normalize_mac(None) is None


async def test_paired_is_union_of_sources(runner):
    runner.responses[btctl("devices")] = DEVICES
    runner.responses[btctl("paired-devices")] = f"Device {PHONE} Pixel 7\n"
    runner.responses[btctl("info", PHONE)] = PHONE_INFO
    runner.responses[btctl("info", SPEAKER)] = f"Name: Car Speaker\nPaired: yes\nConnected: no\n"

    devices = await DeviceDirectory(runner).list_devices()

    assert [d.mac for d in devices] == [PHONE, SPEAKER]
    # info says "no" but paired-devices lists it
    assert devices[0].paired is True
    # info says "yes", paired-devices does not list it
    assert devices[1].paired is True


async def test_paired_listing_is_best_effort(runner):
    runner.responses[btctl("devices")] = f"Device {PHONE} Pixel 7\n"
    runner.responses[btctl("info", PHONE)] = PHONE_INFO
    devices = await DeviceDirectory(runner).list_devices()
    assert len(devices) == 1
    assert devices[0].paired is False


async def test_info_failure_falls_back_to_minimal_record(runner):
    runner.responses[btctl("devices")] = f"Device {SPEAKER} Car Speaker\n"
    runner.responses[btctl("paired-devices")] = f"Device {SPEAKER} Car Speaker\n"
    devices = await DeviceDirectory(runner).list_devices()
    record = devices[0]
    assert record.name == "Car Speaker"
    assert record.alias == "Car Speaker"
    assert record.paired is True
    assert not (record.connected or record.trusted or record.blocked)
    assert record.rssi is None


async def test_name_falls_back_to_listing(runner):
    runner.responses[btctl("devices")] = f"Device {SPEAKER} Car Speaker\n"
    runner.responses[btctl("info", SPEAKER)] = "Connected: yes\n"
    device = await DeviceDirectory(runner).get_connected_device()
    assert device.mac == SPEAKER
    assert device.name == "Car Speaker"


async def test_listing_failure_propagates(runner):
    with pytest.raises(ProcessError):
        await DeviceDirectory(runner).list_devices()


async def test_connect_uses_agent_batch(runner):
    await DeviceDirectory(runner).connect(PHONE)
    assert runner.batches == [["agent on", "default-agent", f"connect {PHONE}"]]
