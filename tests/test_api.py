from __future__ import annotations

from sambactl.api import Client, FlashResult, RunState, UnsupportedChipError


def test_public_client_list_chips(chip_table) -> None:
    client = Client(chips=chip_table)
    chips = client.list_chips()
    assert any(chip.name == "nRF52840-QIAA" for chip in chips)
    assert client.load_warnings == ()


def test_public_client_identify(chip_table, bootloader) -> None:
    client = Client(chips=chip_table)
    info = client.identify(bootloader())
    assert info.name == "nRF52840-QIAA"
    assert info.flash.size == 4096


def test_public_client_identify_unknown_chip(chip_table, bootloader) -> None:
    client = Client(chips=chip_table)
    try:
        client.identify(bootloader(chip_name="mystery"))
    except UnsupportedChipError as exc:
        assert exc.name == "mystery"
    else:
        raise AssertionError("expected UnsupportedChipError")


def test_public_client_flash_and_read_back(chip_table, bootloader, wordchip) -> None:
    client = Client(chips=chip_table)
    device = bootloader(wordchip, version="v1.0")
    image = bytes(range(100))

    result = client.flash(device, image, boot=False)

    assert isinstance(result, FlashResult)
    assert result.state is RunState.DONE
    assert client.read_flash(device, length=100) == image
