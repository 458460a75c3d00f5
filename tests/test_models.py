import pytest

from imagesmith.errors import ConfigError
from imagesmith.models import (
    AppDescriptor, DirectConfig, WingetConfig, OfflineConfig, PsadtConfig, Verdict,
)


def test_direct_config_defaults_applied_at_decode_time():
    app = AppDescriptor.from_dict("Tool", {
        "method": "direct",
        "direct_config": {"download_url": "https://example.com/tool.exe"},
    })
    assert app.config == DirectConfig("https://example.com/tool.exe", "exe", "")
    assert app.enabled is True
    assert app.fallback is None
    assert app.skip_if_installed is None


def test_winget_config_defaults_to_machine_scope_and_latest():
    app = AppDescriptor.from_dict("Git", {"method": "winget", "winget_config": {"package_id": "Git.Git"}})
    assert app.config == WingetConfig("Git.Git", None, "machine")


def test_offline_and_psadt_configs():
    offline = AppDescriptor.from_dict("Lob", {
        "method": "offline",
        "offline_config": {"blob_path": "lob/app.msi", "install_type": "MSI", "transform": "lob/app.mst"},
    })
    assert offline.config == OfflineConfig("lob/app.msi", "msi", "", "lob/app.mst")

    psadt = AppDescriptor.from_dict("Kit", {"method": "psadt", "psadt_config": {"package_path": "kit.zip"}})
    assert psadt.config == PsadtConfig("kit.zip")


def test_config_class_requires_its_fields():
    with pytest.raises(ConfigError, match="winget_config.package_id"):
        WingetConfig.from_dict({}, "Git")


def test_missing_required_field_leaves_entry_without_config(caplog):
    caplog.set_level("ERROR", logger="imagesmith")
    app = AppDescriptor.from_dict("Git", {"method": "winget", "winget_config": {}})
    assert app.method == "winget"
    assert app.config is None
    assert "winget_config.package_id is required" in caplog.text


def test_malformed_fallback_and_precheck_are_dropped_per_part():
    app = AppDescriptor.from_dict("Bad", {
        "method": "direct",
        "direct_config": {"download_url": "https://x/a.exe"},
        "fallback": {"method": "winget"},
        "skip_if_installed": "C:\\app.exe",
    })
    assert app.config == DirectConfig("https://x/a.exe")
    assert app.fallback.method == "winget"
    assert app.fallback.config is None
    assert app.skip_if_installed is None


def test_non_mapping_entry_becomes_unrunnable_descriptor():
    app = AppDescriptor.from_dict("Broken", "winget install git")
    assert app.enabled is True
    assert app.method == ""
    assert app.config is None


@pytest.mark.parametrize("value,expected", [(None, True), ("no", False), (False, False), ("TRUE", True)])
def test_enabled_values(value, expected):
    app = AppDescriptor.from_dict("App", {
        "method": "winget", "enabled": value, "winget_config": {"package_id": "A.B"}})
    assert app.enabled is expected


def test_unknown_method_is_kept_without_config():
    app = AppDescriptor.from_dict("Odd", {"method": "chocolatey"})
    assert app.method == "chocolatey"
    assert app.config is None


def test_fallback_only_decodes_supported_methods():
    app = AppDescriptor.from_dict("App", {
        "method": "offline",
        "offline_config": {"blob_path": "a.msi"},
        "fallback": {"method": "psadt", "psadt_config": {"package_path": "x.zip"}},
    })
    assert app.fallback.method == "psadt"
    assert app.fallback.config is None

    app = AppDescriptor.from_dict("App", {
        "method": "winget",
        "winget_config": {"package_id": "A.B"},
        "fallback": {"method": "direct", "direct_config": {"download_url": "https://x/a.msi", "install_type": "msi"}},
    })
    assert app.fallback.config == DirectConfig("https://x/a.msi", "msi", "")


def test_precheck_aliases_are_normalised():
    app = AppDescriptor.from_dict("App", {
        "method": "winget",
        "winget_config": {"package_id": "A.B"},
        "skip_if_installed": {"check_type": "provisioned-package", "pattern": "Microsoft.Foo*"},
    })
    assert app.skip_if_installed.check_type == "appx"
    assert app.skip_if_installed.check_path == "Microsoft.Foo*"


def test_disabled_entry_is_not_decoded():
    app = AppDescriptor.from_dict("Off", {"method": "winget", "enabled": False, "winget_config": {}})
    assert app.enabled is False
    assert app.config is None


def test_skipped_verdict_must_be_successful():
    assert Verdict.skip() == Verdict(success=True, method_used="skipped", skipped=True)
    with pytest.raises(ValueError):
        Verdict(success=False, method_used="skipped", skipped=True)
