import json

import pytest

from imagesmith.validator import ConfigValidator, ManifestValidator, is_valid_url

SUB = "/subscriptions/0000/resourceGroups/rg-images/providers"
IDENTITY = f"{SUB}/Microsoft.ManagedIdentity/userAssignedIdentities/aib-identity"
GALLERY = f"{SUB}/Microsoft.Compute/galleries/gallery/images/win11-avd"


def _manifest(**apps):
    return {"applications": apps}


def _config(manifest_path, **overrides):
    config = {
        "name": "win11-golden",
        "resource_group": "rg-images",
        "location": "westeurope",
        "identity": {"resource_id": IDENTITY},
        "source": {"type": "PlatformImage", "publisher": "MicrosoftWindowsDesktop",
                   "offer": "windows-11", "sku": "win11-23h2-avd"},
        "distribute": {"gallery_image_id": GALLERY},
        "installer": {"manifest_file": str(manifest_path)},
    }
    config.update(overrides)
    return config


@pytest.fixture()
def manifest_file(tmp_path):
    path = tmp_path / "apps.json"
    path.write_text(json.dumps(_manifest(
        Git={"method": "winget", "winget_config": {"package_id": "Git.Git"}},
        Lob={"method": "offline", "offline_config": {"blob_path": "lob/app.msi", "install_type": "msi"}},
    )))
    return path


def test_valid_manifest_has_no_errors():
    ok, errors, warnings = ManifestValidator().validate(_manifest(
        Git={"method": "winget", "winget_config": {"package_id": "Git.Git"}}))
    assert ok and errors == [] and warnings == []


def test_bare_application_map_is_accepted():
    ok, errors, _ = ManifestValidator().validate(
        {"Git": {"method": "winget", "winget_config": {"package_id": "Git.Git"}}})
    assert ok, errors


def test_unknown_method_and_missing_config_are_errors():
    ok, errors, _ = ManifestValidator().validate(_manifest(
        A={"method": "chocolatey"},
        B={"method": "direct"},
    ))
    assert not ok
    assert any("unknown method 'chocolatey'" in e for e in errors)
    assert any("requires direct_config" in e for e in errors)


def test_invalid_install_type_is_an_error():
    ok, errors, _ = ManifestValidator().validate(_manifest(
        A={"method": "direct", "direct_config": {"download_url": "https://x/a", "install_type": "zip"}}))
    assert not ok
    assert "invalid install_type 'zip'" in errors[0]


def test_schema_violation_is_reported():
    ok, errors, _ = ManifestValidator().validate(_manifest(
        A={"method": "winget", "winget_config": {}}))
    assert not ok
    assert errors[0].startswith("Schema validation error")


def test_fallback_and_precheck_warnings():
    ok, errors, warnings = ManifestValidator().validate(_manifest(
        A={
            "method": "direct",
            "direct_config": {"download_url": "https://x/a.exe"},
            "fallback": {"method": "psadt"},
            "skip_if_installed": {"check_type": "wmi"},
        },
        B={
            "method": "winget",
            "winget_config": {"package_id": "B.B"},
            "fallback": {"method": "winget", "winget_config": {"package_id": "B.B"}},
        },
    ))
    assert ok, errors
    text = "\n".join(warnings)
    assert "fallback method 'psadt' is not supported" in text
    assert "unknown check_type 'wmi'" in text
    assert "has no check_path" in text
    assert "same method as the primary" in text


def test_no_enabled_apps_warns():
    ok, _, warnings = ManifestValidator().validate(_manifest(
        A={"method": "direct", "enabled": False}))
    assert ok
    assert warnings == ["Manifest has no enabled applications"]


def test_null_enabled_counts_as_enabled():
    ok, errors, warnings = ManifestValidator().validate(_manifest(
        A={"method": "direct", "enabled": None}))
    assert not ok
    assert errors == ["Application 'A': method 'direct' requires direct_config"]
    assert "Manifest has no enabled applications" not in warnings


def test_build_config_is_valid(manifest_file):
    config = _config(manifest_file, installer={
        "manifest_file": str(manifest_file),
        "storage_base_url": "https://store.blob.core.windows.net/apps",
    })
    ok, errors, warnings = ConfigValidator().validate(config)
    assert ok, errors
    assert not any("storage base URL" in w for w in warnings)


def test_missing_storage_url_surfaces_manifest_warning(manifest_file):
    ok, _, warnings = ConfigValidator().validate(_config(manifest_file))
    assert ok
    assert any("Lob" in w and "storage base URL" in w for w in warnings)


def test_build_config_semantic_errors(manifest_file):
    config = _config(
        manifest_file,
        identity={"resource_id": "not-an-id"},
        source={"type": "SharedImageVersion"},
        distribute={"gallery_image_id": "gallery"},
        steps={"optimize": {"enabled": True, "script_uri": "ftp://nope", "sha256": "abc"}},
    )
    ok, errors, _ = ConfigValidator().validate(config)
    assert not ok
    text = "\n".join(errors)
    assert "Invalid user-assigned identity" in text
    assert "requires image_version_id" in text
    assert "Invalid gallery image definition ID" in text
    assert "Invalid script URI for step 'optimize'" in text
    assert "Invalid sha256 checksum" in text


def test_missing_manifest_file_is_an_error(tmp_path):
    ok, errors, _ = ConfigValidator().validate(_config(tmp_path / "absent.json"))
    assert not ok
    assert errors[0].startswith("Application manifest:")


def test_missing_required_field_fails_schema(manifest_file):
    config = _config(manifest_file)
    del config["distribute"]
    ok, errors, _ = ConfigValidator().validate(config)
    assert not ok
    assert "distribute" in errors[0]


@pytest.mark.parametrize("url,expected", [
    ("https://store.blob.core.windows.net/apps", True),
    ("http://localhost:8080/x", True),
    ("ftp://host/x", False),
    ("", False),
])
def test_is_valid_url(url, expected):
    assert is_valid_url(url) is expected
