"""Settings loading and the config -> kernel bridge."""

from __future__ import annotations

from datetime import date

import pytest
import yaml

from bundle_config import get_active_settings
from bundle_config.bridges import build_orchestrator
from bundle_config.loader import DEFAULTS_PATH, load_yaml_file, merge_settings, parse_settings
from bundle_kernel.domain.dtos import NewBundleSpec
from bundle_kernel.exceptions import InvalidLocationCodeError


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:

    def test_shipped_defaults(self):
        settings = get_active_settings()
        assert settings.database_url == "sqlite:///bundles.db"
        assert settings.location_codes == tuple(f"C{i}" for i in range(1, 11))
        assert settings.recompute_order_status is True
        assert settings.log_level == "INFO"
        assert len(settings.checksum) == 64

    def test_checksum_is_stable(self):
        assert get_active_settings().checksum == get_active_settings().checksum

    def test_load_logged(self, captured_logs):
        get_active_settings()
        loaded = [r for r in captured_logs() if r["message"] == "bundle_config_loaded"]
        assert loaded and loaded[0]["source"] == str(DEFAULTS_PATH)


class TestOverrides:

    def test_override_file_layers_on_defaults(self, tmp_path):
        path = write_yaml(
            tmp_path / "site.yaml",
            {
                "database": {"url": "sqlite:///site.db"},
                "locations": {"codes": ["a1", " b2 "]},
                "orders": {"recompute_order_status": False},
            },
        )
        settings = get_active_settings(path)

        assert settings.database_url == "sqlite:///site.db"
        assert settings.pool_size == 20
        assert settings.location_codes == ("A1", "B2")
        assert settings.recompute_order_status is False
        assert settings.checksum != get_active_settings().checksum

    def test_empty_allow_list(self, tmp_path):
        path = write_yaml(tmp_path / "open.yaml", {"locations": {"codes": []}})
        assert get_active_settings(path).location_codes == ()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_settings(tmp_path / "absent.yaml")

    def test_unknown_section(self, tmp_path):
        path = write_yaml(tmp_path / "bad.yaml", {"metrics": {"enabled": True}})
        with pytest.raises(ValueError, match="metrics"):
            get_active_settings(path)

    @pytest.mark.parametrize(
        "override",
        [
            {"database": {"echo": "yes"}},
            {"database": {"pool_size": -1}},
            {"database": {"url": ""}},
            {"locations": {"codes": "C1"}},
            {"orders": {"recompute_order_status": 1}},
        ],
    )
    def test_bad_values(self, override):
        data = merge_settings(load_yaml_file(DEFAULTS_PATH), override)
        with pytest.raises(ValueError):
            parse_settings(data)

    def test_non_mapping_top_level(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_yaml_file(path)


class TestBridge:

    def test_build_orchestrator_from_settings(self, tmp_path, deterministic_clock):
        path = write_yaml(
            tmp_path / "bridge.yaml",
            {
                "database": {"url": f"sqlite:///{tmp_path / 'bridge.db'}"},
                "locations": {"codes": ["C1", "C2"]},
            },
        )
        orchestrator = build_orchestrator(get_active_settings(path), clock=deterministic_clock)

        assert orchestrator.location_codes == ("C1", "C2")
        order = orchestrator.create_cut_order(
            "77", date(2024, 3, 1), [NewBundleSpec(sheets=3)], default_location_code="C2"
        )
        assert orchestrator.get_cut_order(order.id).bundles[0].location.code == "C2"
        with pytest.raises(InvalidLocationCodeError):
            orchestrator.apply_bundle_action([order.bundles[0].id], "move", destination_code="C3")
