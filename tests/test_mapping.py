"""
Tests for device payload mapping
"""
import os
from unittest.mock import patch

import pytest

from common.config import Config
from reconciliation.decoder import decode_deep
from reconciliation.mapping import (
    application_record_from_row,
    build_application_records,
    build_facets,
    build_records,
    build_roster,
    device_display_name,
    extract_installed_applications,
    is_device_payload,
    is_test_device,
)
from reconciliation.models import DeviceFacets, DeviceRosterEntry


class TestDevicePayloadMapping:
    """Test mapping of agent device payloads"""

    @pytest.fixture
    def device(self):
        """Create a decoded device payload"""
        return {
            "deviceId": "dev-1",
            "serialNumber": "A1",
            "lastSeen": "2024-05-01T10:00:00Z",
            "platform": "Windows",
            "modules": {
                "inventory": {
                    "deviceName": "LAB-PC-01",
                    "usage": "Shared",
                    "catalog": "Staff",
                    "location": "Main Building",
                    "fleet": "2023 Refresh",
                },
                "applications": {
                    "collectedAt": "2024-05-01T09:00:00Z",
                    "installedApplications": [
                        {"name": "7-Zip 23.01 (x64)", "version": "23.01", "publisher": "Igor Pavlov"},
                        {"displayName": "Google Chrome", "version": "119.0.1", "installDate": "20240101"},
                        "not-a-dict",
                    ],
                },
            },
        }

    def test_build_application_records(self, device):
        """Test one record per installed application"""
        records = build_application_records(device)

        assert len(records) == 2
        first, second = records
        assert first.device_serial == "A1"
        assert first.device_name == "LAB-PC-01"
        assert first.device_id == "dev-1"
        assert first.raw_name == "7-Zip 23.01 (x64)"
        assert first.canonical_name == "7-Zip"
        assert first.version == "23.01"
        assert first.vendor == "Igor Pavlov"
        assert first.collected_at == "2024-05-01T09:00:00Z"
        assert first.last_seen == "2024-05-01T10:00:00Z"
        assert first.category == "Other"
        assert first.architecture == "Unknown"

        assert second.raw_name == "Google Chrome"
        assert second.install_date == "20240101"
        assert second.vendor == ""

    def test_device_facets_from_inventory(self, device):
        """Test facets come from the inventory module"""
        records = build_application_records(device)
        assert records[0].facets == DeviceFacets(
            usage="Shared",
            catalog="Staff",
            location="Main Building",
            room="Main Building",
            fleet="2023 Refresh",
            platform="Windows",
        )

    def test_encoded_modules(self):
        """Test modules delivered as encoded record strings"""
        device = {
            "serialNumber": "B2",
            "modules": "@{inventory=@{usage=Assigned; catalog=Curriculum; room=Lab 2}}",
        }
        entry = build_roster([device])[0]
        assert entry.facets.usage == "Assigned"
        assert entry.facets.catalog == "Curriculum"
        assert entry.facets.room == "Lab 2"
        assert entry.display_name == "B2"

    def test_custom_resolver(self, device):
        """Test the canonical resolver is injectable"""
        records = build_application_records(device, resolve=str.upper)
        assert records[0].canonical_name == "7-ZIP 23.01 (X64)"

    def test_extract_installed_applications(self):
        """Test the applications list is found under any known spelling"""
        assert extract_installed_applications({"InstalledApplications": [{"name": "A"}]}) == [{"name": "A"}]
        assert extract_installed_applications({"installed_applications": "oops"}) == []
        assert extract_installed_applications(None) == []

    def test_display_name_fallbacks(self):
        """Test the display name falls back to identity fields"""
        assert device_display_name({"displayName": "Front Desk", "serialNumber": "X"}) == "Front Desk"
        assert device_display_name({"serialNumber": "X"}) == "X"
        assert device_display_name({}) == "Unknown Device"


class TestRowMapping:
    """Test mapping of flattened application rows"""

    def test_row_with_facets(self):
        """Test a flat row carrying its own facets"""
        record = application_record_from_row({
            "serialNumber": "C3",
            "deviceName": "Library Kiosk",
            "rawName": "Mozilla Firefox (x64 en-US)",
            "version": "120.0",
            "vendor": "Mozilla",
            "facets": {"usage": "Shared", "catalog": "Curriculum", "location": "Library"},
        })
        assert record.canonical_name == "Mozilla Firefox"
        assert record.device_name == "Library Kiosk"
        assert record.facets.catalog == "Curriculum"
        assert record.facets.room == "Library"

    def test_flat_row_facets(self):
        """Test facets read from the row itself"""
        facets = build_facets({"usage": " Shared ", "osPlatform": "macOS", "room": "R1", "location": "East"})
        assert facets.usage == "Shared"
        assert facets.platform == "macOS"
        assert facets.room == "R1"
        assert facets.location == "East"

    def test_row_inherits_roster_facets(self):
        """Test a row without facets takes them from its roster entry"""
        entry = DeviceRosterEntry(serial="A1", display_name="Alpha", facets=DeviceFacets(catalog="Staff"))
        record = application_record_from_row(
            {"serialNumber": "A1", "rawName": "Google Chrome 119.0.1", "version": "119.0.1"},
            roster_entry=entry,
        )
        assert record.facets.catalog == "Staff"
        assert record.device_name == "Alpha"

    def test_row_facets_win_over_roster(self):
        """Test a row's own facets and device name are kept"""
        entry = DeviceRosterEntry(serial="A1", display_name="Alpha", facets=DeviceFacets(catalog="Staff"))
        record = application_record_from_row(
            {"serialNumber": "A1", "deviceName": "Lab PC", "name": "7-Zip", "catalog": "Curriculum"},
            roster_entry=entry,
        )
        assert record.facets.catalog == "Curriculum"
        assert record.device_name == "Lab PC"

    def test_build_records_uses_roster_index(self):
        """Test flat rows are matched to roster entries by serial"""
        index = {"B2": DeviceRosterEntry(serial="B2", display_name="Bravo", facets=DeviceFacets(usage="Shared"))}
        records = build_records(
            [{"serialNumber": "A1", "name": "7-Zip"}, {"serialNumber": "B2", "name": "7-Zip"}],
            roster_index=index,
        )
        assert [record.facets.usage for record in records] == ["", "Shared"]
        assert records[1].device_name == "Bravo"

    def test_is_device_payload(self):
        """Test payload detection"""
        assert is_device_payload({"modules": {}}) is True
        assert is_device_payload({"name": "7-Zip"}) is False


class TestTestDevices:
    """Test exclusion of test devices"""

    @pytest.mark.parametrize("serial", ["TEST-001", "localhost", "", None])
    def test_excluded_serials(self, serial):
        """Test default test serials"""
        assert is_test_device(serial) is True

    def test_regular_serial(self):
        """Test a normal serial is kept"""
        assert is_test_device("A1") is False

    @patch.dict(os.environ, {'TEST_SERIAL_PREFIXES': 'LAB-'})
    def test_configured_prefixes(self):
        """Test test prefixes come from configuration"""
        with patch('reconciliation.mapping.config', Config()):
            assert is_test_device("LAB-9") is True
            assert is_test_device("TEST-001") is False

    @patch.dict(os.environ, {'TEST_SERIAL_PREFIXES': 'LAB-'})
    def test_explicit_settings(self):
        """Test settings passed in override the global configuration"""
        settings = Config().reconciliation
        assert is_test_device("LAB-1", settings) is True
        assert is_test_device("LAB-1") is False
        items = [{"serialNumber": "LAB-1", "name": "7-Zip"}, {"serialNumber": "A1", "name": "7-Zip"}]
        assert [record.device_serial for record in build_records(items, settings=settings)] == ["A1"]
        assert [entry.serial for entry in build_roster(items, settings)] == ["A1"]

    def test_build_records_skips_test_devices(self):
        """Test records and roster skip test devices"""
        items = [
            {"serialNumber": "TEST-1", "name": "7-Zip"},
            {"serialNumber": "localhost", "name": "7-Zip"},
            {"serialNumber": "A1", "name": "7-Zip"},
            "junk",
        ]
        records = build_records(items)
        assert [record.device_serial for record in records] == ["A1"]

    def test_build_roster_skips_duplicates(self):
        """Test one roster entry per serial"""
        roster = build_roster([
            {"serialNumber": "A1", "displayName": "First"},
            {"serialNumber": "A1", "displayName": "Second"},
            {"serialNumber": "TEST-2"},
        ])
        assert len(roster) == 1
        assert roster[0].display_name == "First"

    def test_decoded_payload_mapping(self):
        """Test mapping after decode_deep on an encoded payload"""
        payload = decode_deep([{
            "serialNumber": "D4",
            "modules": {
                "inventory": "@{usage=Assigned; catalog=Staff; location=Annex}",
                "applications": {"installedApplications": [{"name": "Zoom Workplace (64-bit)", "version": "5.17"}]},
            },
        }])
        records = build_records(payload)
        assert len(records) == 1
        assert records[0].canonical_name == "Zoom Workplace"
        assert records[0].facets.location == "Annex"
