import io
import pytest
from unittest.mock import patch

from rich.console import Console

from mini_arch import prompts
from mini_arch.config.models import InstallerConfig
from mini_arch.disk import BlockDevice
from mini_arch.utils.exceptions import DiskSelectionError, InstallAborted

DISKS = [
    BlockDevice(name="sda", size="40G", model="QEMU HARDDISK"),
    BlockDevice(name="nvme0n1", size="512G", model=""),
]


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120)


def output(console):
    return console.file.getvalue()


@patch("mini_arch.prompts.Prompt.ask", return_value="2")
def test_select_disk(mock_ask, console):
    assert prompts.select_disk(DISKS, console=console) == "/dev/nvme0n1"
    assert "/dev/sda" in output(console)
    assert "Unknown" in output(console)


@patch("mini_arch.prompts.Prompt.ask", side_effect=["abc", "7", "0", "1"])
def test_select_disk_asks_again_until_valid(mock_ask, console):
    assert prompts.select_disk(DISKS, console=console) == "/dev/sda"
    assert mock_ask.call_count == 4
    assert "Please enter a number" in output(console)
    assert "choose a valid disk" in output(console)


def test_select_disk_without_candidates(console):
    with pytest.raises(DiskSelectionError, match="No valid disks"):
        prompts.select_disk([], console=console)


@patch("mini_arch.prompts.Prompt.ask")
@patch("mini_arch.prompts.Confirm.ask")
def test_ask_missing_collects_answers(mock_confirm, mock_prompt, console):
    mock_confirm.side_effect = [False, True, True]
    mock_prompt.side_effect = ["box", "Europe/Paris", "fr_FR.UTF-8", "fr", "alice"]

    config = prompts.ask_missing(InstallerConfig.model_validate({"storage": {"device": "/dev/sda"}}), console=console)

    assert config.encryption.enabled is False
    assert config.services.ssh is True
    assert config.services.ufw is True
    assert config.system.hostname == "box"
    assert config.system.timezone == "Europe/Paris"
    assert config.system.locale == "fr_FR.UTF-8"
    assert config.system.keymap == "fr"
    assert config.user.username == "alice"
    assert config.storage.device == "/dev/sda"
    # current values are offered as defaults
    assert mock_prompt.call_args_list[0][1]["default"] == "arch"


@patch("mini_arch.prompts.Prompt.ask")
@patch("mini_arch.prompts.Confirm.ask", return_value=False)
def test_ask_missing_repeats_on_invalid_answer(mock_confirm, mock_prompt, console):
    mock_prompt.side_effect = [
        "bad host", "Europe/Berlin", "en_US.UTF-8", "us", "user",
        "goodhost", "Europe/Berlin", "en_US.UTF-8", "us", "user",
    ]

    config = prompts.ask_missing(InstallerConfig(), console=console)

    assert config.system.hostname == "goodhost"
    assert mock_prompt.call_count == 10
    assert "Invalid configuration value" in output(console)


@patch("mini_arch.prompts.Prompt.ask", return_value="YES")
def test_confirm_install_accepts_yes(mock_ask, sda_config, console):
    prompts.confirm_install(sda_config, console=console)
    assert "/dev/sda" in output(console)


@pytest.mark.parametrize("answer", ["", "yes", "y", "NO"])
def test_confirm_install_aborts_otherwise(answer, sda_config, console):
    with patch("mini_arch.prompts.Prompt.ask", return_value=answer):
        with pytest.raises(InstallAborted):
            prompts.confirm_install(sda_config, console=console)
