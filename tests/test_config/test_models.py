"""Tests for configuration models and duration parsing."""

import pytest
from pydantic import ValidationError

from node_telemetry.config.models import (
    AcquisitionConfig,
    BeegfsCollectorConfig,
    DEFAULT_BEEGFS_CMD,
    IPMIReceiverConfigModel,
    TopProcsCollectorConfig,
    parse_duration,
)


class TestParseDuration:
    """Test suite for parse_duration."""

    @pytest.mark.parametrize("text,seconds", [
        ("30s", 30.0),
        ("1m30s", 90.0),
        ("500ms", 0.5),
        ("1.5h", 5400.0),
        ("2h45m", 9900.0),
        ("0", 0.0),
        (15, 15.0),
        (2.5, 2.5),
    ])
    def test_valid(self, text, seconds):
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize("text", ["", "30", "s", "10x", "1m 30s", "abc"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_duration(text)


class TestCollectorConfigs:
    """Test suite for collector configuration models."""

    def test_beegfs_defaults(self):
        config = BeegfsCollectorConfig()
        assert config.beegfs_path == DEFAULT_BEEGFS_CMD
        assert config.exclude_metrics == []
        assert config.exclude_filesystem == []

    def test_beegfs_binary_path_alias(self):
        config = BeegfsCollectorConfig.model_validate({"binary_path": "/opt/beegfs/bin/beegfs-ctl"})
        assert config.beegfs_path == "/opt/beegfs/bin/beegfs-ctl"

    def test_topprocs_default(self):
        assert TopProcsCollectorConfig().num_procs == 2

    def test_topprocs_num_items_alias(self):
        assert TopProcsCollectorConfig.model_validate({"num_items": 7}).num_procs == 7

    @pytest.mark.parametrize("num", [0, -1, 11])
    def test_topprocs_out_of_range(self, num):
        with pytest.raises(ValidationError):
            TopProcsCollectorConfig.model_validate({"num_procs": num})


class TestReceiverConfig:
    """Test suite for the IPMI receiver configuration model."""

    def test_defaults(self):
        config = IPMIReceiverConfigModel()
        assert config.fanout == 64
        assert config.driver_type == "LAN_2_0"
        assert config.interval == 30.0
        assert config.missed_tick_policy == "coalesce"

    def test_interval_duration_string(self):
        assert IPMIReceiverConfigModel.model_validate({"interval": "1m"}).interval == 60.0

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValidationError):
            IPMIReceiverConfigModel.model_validate({"interval": "0"})

    def test_password_is_masked(self):
        config = IPMIReceiverConfigModel.model_validate({"password": "s3cret"})
        assert "s3cret" not in repr(config)
        assert config.password.get_secret_value() == "s3cret"

    def test_unknown_missed_tick_policy_rejected(self):
        with pytest.raises(ValidationError):
            IPMIReceiverConfigModel.model_validate({"missed_tick_policy": "drop"})


class TestAcquisitionConfig:
    """Test suite for the root configuration model."""

    def test_empty_sections(self):
        config = AcquisitionConfig.model_validate({"collectors": None, "receivers": None})
        assert config.collectors == {}
        assert config.receivers == {}

    def test_interval_parsed(self):
        assert AcquisitionConfig.model_validate({"interval": "10s"}).interval == 10.0
