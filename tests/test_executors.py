import io
import zipfile
from pathlib import Path

import pytest

from imagesmith.executors import (
    DirectExecutor, WingetExecutor, OfflineExecutor, PsadtExecutor,
    STANDARD_SUCCESS_CODES, PSADT_SUCCESS_CODES,
    is_success, derive_filename, msi_command, find_entry_point,
)
from imagesmith.models import DirectConfig, WingetConfig, OfflineConfig, PsadtConfig

from conftest import FakeDownloader, FakeRunner

BASE = "https://store.blob.core.windows.net/apps"


class StaticBootstrap:
    def __init__(self, client):
        self.client = client

    def ensure_client(self):
        return self.client


def _zip_bytes(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


@pytest.mark.parametrize("code", [0, 3010, 1641])
def test_standard_and_toolkit_sets_accept_common_codes(code):
    assert is_success(code, STANDARD_SUCCESS_CODES)
    assert is_success(code, PSADT_SUCCESS_CODES)


def test_code_sets_are_applied_independently():
    extra = PSADT_SUCCESS_CODES - STANDARD_SUCCESS_CODES
    assert extra == {3011}
    assert not is_success(3011, STANDARD_SUCCESS_CODES)
    assert is_success(3011, PSADT_SUCCESS_CODES)
    assert not is_success(1603, PSADT_SUCCESS_CODES)


def test_derive_filename_strips_query_and_falls_back():
    assert derive_filename("https://x/y/app.msi?token=abc", "App", "msi") == "app.msi"
    assert derive_filename("https://x/y/ab", "My App", "exe") == "My_App.exe"
    assert derive_filename("https://x/y/", "Tool", "msi") == "Tool.msi"


def test_msi_command_appends_silent_flags_only_when_missing():
    path = Path("C:/dl/app.msi")
    assert msi_command(path) == f'msiexec.exe /i "{path}" /qn /norestart'
    assert msi_command(path, "/quiet ALLUSERS=1") == f'msiexec.exe /i "{path}" /quiet ALLUSERS=1'
    transform = Path("C:/dl/app.mst")
    assert msi_command(path, "ALLUSERS=1", transform).endswith(
        f'ALLUSERS=1 TRANSFORMS="{transform}" /qn /norestart'
    )


def test_direct_msi_install(workspace, downloader):
    runner = FakeRunner([3010])
    executor = DirectExecutor(workspace, downloader, runner)
    config = DirectConfig("https://x/y/app.msi?token=abc", "msi", "ALLUSERS=1")

    assert executor.install("App", config) is True
    url, dest = downloader.calls[0]
    assert dest.name == "app.msi"
    assert runner.commands[0].startswith('msiexec.exe /i "')
    assert "ALLUSERS=1 /qn /norestart" in runner.commands[0]


def test_direct_exe_failure_code(workspace, downloader):
    runner = FakeRunner([1603])
    executor = DirectExecutor(workspace, downloader, runner)
    assert executor.install("App", DirectConfig("https://x/setup.exe", "exe", "/S")) is False
    assert runner.commands[0].endswith('setup.exe" /S')


def test_direct_download_failure_returns_false(workspace):
    runner = FakeRunner()
    executor = DirectExecutor(workspace, FakeDownloader(fail=True), runner)
    assert executor.install("App", DirectConfig("https://x/setup.exe")) is False
    assert runner.commands == []


def test_direct_package_bundle_is_provisioned(workspace, downloader, runner):
    executor = DirectExecutor(workspace, downloader, runner)
    assert executor.install("App", DirectConfig("https://x/app.msixbundle", "msixbundle")) is True
    assert "Add-AppxProvisionedPackage" in runner.scripts[0]
    assert runner.commands == []


def test_direct_package_bundle_error_is_failure(workspace, downloader, runner):
    runner.fail_scripts_containing = ["Add-AppxProvisionedPackage"]
    executor = DirectExecutor(workspace, downloader, runner)
    assert executor.install("App", DirectConfig("https://x/app.msix", "msix")) is False


def test_direct_unknown_install_type(workspace, downloader, runner):
    executor = DirectExecutor(workspace, downloader, runner)
    assert executor.install("App", DirectConfig("https://x/app.zip", "zip")) is False
    assert runner.commands == []


def test_executor_never_raises(workspace, downloader):
    class ExplodingRunner(FakeRunner):
        def run(self, command):
            raise RuntimeError("boom")

    executor = DirectExecutor(workspace, downloader, ExplodingRunner())
    assert executor.install("App", DirectConfig("https://x/setup.exe")) is False
    assert executor.install("App", None) is False


def test_winget_command_flags(workspace, downloader):
    runner = FakeRunner([0, 0])
    executor = WingetExecutor(workspace, downloader, StaticBootstrap("winget.exe"), runner)

    assert executor.install("Git", WingetConfig("Git.Git")) is True
    cmd = runner.commands[0]
    assert cmd[:4] == ["winget.exe", "install", "--id", "Git.Git"]
    for flag in ("--silent", "--accept-package-agreements", "--accept-source-agreements",
                 "--disable-interactivity"):
        assert flag in cmd
    assert cmd[cmd.index("--scope") + 1] == "machine"
    assert "--version" not in cmd

    assert executor.install("Git", WingetConfig("Git.Git", "2.44.0", "user")) is True
    cmd = runner.commands[1]
    assert cmd[cmd.index("--version") + 1] == "2.44.0"
    assert cmd[cmd.index("--scope") + 1] == "user"


def test_winget_unavailable_fails(workspace, downloader, runner):
    executor = WingetExecutor(workspace, downloader, StaticBootstrap(None), runner)
    assert executor.install("Git", WingetConfig("Git.Git")) is False
    assert runner.commands == []


def test_offline_requires_storage_url(workspace, downloader, runner):
    executor = OfflineExecutor(workspace, downloader, runner)
    assert executor.install("Lob", OfflineConfig("lob/app.msi", "msi"), "") is False
    assert downloader.calls == []


def test_offline_msi_with_transform(workspace, downloader, runner):
    executor = OfflineExecutor(workspace, downloader, runner)
    config = OfflineConfig("lob/app.msi", "msi", "", "lob/custom.mst")

    assert executor.install("Lob", config, BASE + "/") is True
    assert [url for url, _ in downloader.calls] == [f"{BASE}/lob/app.msi", f"{BASE}/lob/custom.mst"]
    assert "TRANSFORMS=" in runner.commands[0]
    assert "custom.mst" in runner.commands[0]


def test_offline_missing_transform_installs_without_it(workspace, runner):
    downloader = FakeDownloader()
    downloader.failing_urls = [f"{BASE}/lob/custom.mst"]
    executor = OfflineExecutor(workspace, downloader, runner)
    assert executor.install("Lob", OfflineConfig("lob/app.msi", "msi", "", "lob/custom.mst"), BASE) is True
    assert "TRANSFORMS=" not in runner.commands[0]


def test_offline_appv_publishes_globally(workspace, downloader, runner):
    executor = OfflineExecutor(workspace, downloader, runner)
    assert executor.install("Virt", OfflineConfig("virt/app.appv", "appv"), BASE) is True
    assert "Add-AppvClientPackage" in runner.scripts[0]
    assert "Publish-AppvClientPackage -Global" in runner.scripts[0]


def test_psadt_extracts_and_runs_entry_point(workspace):
    url = f"{BASE}/psadt/kit.zip"
    downloader = FakeDownloader({url: _zip_bytes({
        "Kit/Toolkit/Deploy-Application.ps1": "# deploy",
        "Kit/Toolkit/AppDeployToolkit/readme.txt": "x",
    })})
    runner = FakeRunner([3011])
    executor = PsadtExecutor(workspace, downloader, runner)

    assert executor.install("Kit", PsadtConfig("psadt/kit.zip"), BASE) is True
    cmd = runner.commands[0]
    script = Path(cmd[cmd.index("-File") + 1])
    assert script.name == "Deploy-Application.ps1"
    assert workspace.toolkit_root in script.parents
    assert cmd[-5:] == ["-DeploymentType", "Install", "-DeployMode", "NonInteractive", "-AllowRebootPassThru"]


def test_psadt_clears_previous_extraction(workspace):
    stale = workspace.toolkit_root / "Kit" / "stale.txt"
    stale.parent.mkdir(parents=True)
    stale.write_text("old")
    url = f"{BASE}/kit.zip"
    downloader = FakeDownloader({url: _zip_bytes({"Deploy-Application.ps1": ""})})

    assert PsadtExecutor(workspace, downloader, FakeRunner([0])).install("Kit", PsadtConfig("kit.zip"), BASE)
    assert not stale.exists()


def test_psadt_without_entry_point_fails(workspace, runner):
    url = f"{BASE}/kit.zip"
    downloader = FakeDownloader({url: _zip_bytes({"other.ps1": ""})})
    assert PsadtExecutor(workspace, downloader, runner).install("Kit", PsadtConfig("kit.zip"), BASE) is False
    assert runner.commands == []


def test_psadt_requires_storage_url(workspace, downloader, runner):
    assert PsadtExecutor(workspace, downloader, runner).install("Kit", PsadtConfig("kit.zip")) is False


def test_find_entry_point_prefers_shallowest(tmp_path):
    deep = tmp_path / "a" / "b" / "Deploy-Application.ps1"
    shallow = tmp_path / "z" / "Deploy-Application.ps1"
    deep.parent.mkdir(parents=True)
    shallow.parent.mkdir(parents=True)
    deep.write_text("")
    shallow.write_text("")
    assert find_entry_point(tmp_path) == shallow
