import pytest
from unittest.mock import patch

from mini_arch import preflight
from mini_arch.utils.exceptions import PreflightError


@patch("mini_arch.preflight.os.geteuid", return_value=1000)
def test_check_root_rejects_regular_user(mock_geteuid):
    with pytest.raises(PreflightError, match="root privileges"):
        preflight.check_root()


@patch("mini_arch.preflight.os.geteuid", return_value=0)
def test_check_root_accepts_root(mock_geteuid):
    preflight.check_root()


def test_check_uefi(tmp_path):
    preflight.check_uefi(efi_dir=str(tmp_path))
    with pytest.raises(PreflightError, match="UEFI"):
        preflight.check_uefi(efi_dir=str(tmp_path / "missing"))


@patch("mini_arch.preflight.shutil.which", side_effect=lambda name: None if name == "pacstrap" else f"/usr/bin/{name}")
def test_check_tools_lists_missing(mock_which):
    assert preflight.missing_tools(["parted", "pacstrap"]) == ["pacstrap"]
    with pytest.raises(PreflightError, match="pacstrap"):
        preflight.check_tools()


@patch("mini_arch.preflight.check_tools")
@patch("mini_arch.preflight.check_uefi")
@patch("mini_arch.preflight.check_root", side_effect=PreflightError("Application must run with root privileges."))
def test_run_preflight_stops_at_first_failure(mock_root, mock_uefi, mock_tools):
    with pytest.raises(PreflightError):
        preflight.run_preflight()
    mock_uefi.assert_not_called()
    mock_tools.assert_not_called()
