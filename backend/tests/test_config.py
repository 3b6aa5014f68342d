"""Tests for ScanConfig construction from the environment."""

import pytest

from sentinelhub.config import DiscoveryLimits, ScanConfig


class TestFromEnv:

    def test_defaults(self):
        config = ScanConfig.from_env({})
        assert config == ScanConfig()
        assert config.github_token is None
        assert config.tool_paths == {}

    def test_overrides(self):
        config = ScanConfig.from_env({
            "GITHUB_TOKEN": "ghp_token",
            "GITHUB_API_URL": "https://ghe.example.com/api/v3",
            "AWS_DEFAULT_REGION": "eu-west-1",
            "SENTINEL_MAX_UNITS": "50",
            "SENTINEL_MAX_DEPTH": "5",
            "SENTINEL_MAX_CONCURRENCY": "4",
            "SENTINEL_VERIFY_SECRETS": "yes",
            "SENTINEL_DEPENDENCY_LOOKUP": "false",
            "SENTINEL_SESSION_TTL": "3600",
            "SEMGREP_BIN": "/opt/semgrep/bin/semgrep",
        })
        assert config.github_token == "ghp_token"
        assert config.github_api_url == "https://ghe.example.com/api/v3"
        assert config.aws_region == "eu-west-1"
        assert config.discovery_limits == DiscoveryLimits(max_units=50, max_depth=5, max_unit_size_bytes=1_000_000)
        assert config.max_concurrency == 4
        assert config.verify_secrets is True
        assert config.dependency_lookup_enabled is False
        assert config.session_ttl_seconds == 3600
        assert config.tool_paths == {"semgrep": "/opt/semgrep/bin/semgrep"}

    def test_bad_numbers_fall_back(self):
        config = ScanConfig.from_env({"SENTINEL_MAX_UNITS": "lots", "SENTINEL_MAX_DEPTH": " "})
        assert config.max_units == 30
        assert config.max_depth == 3

    def test_explicit_region_wins(self):
        config = ScanConfig.from_env({"AWS_REGION": "us-west-2", "AWS_DEFAULT_REGION": "eu-west-1"})
        assert config.aws_region == "us-west-2"

    def test_secret_tools_can_enable_gitleaks(self):
        config = ScanConfig.from_env({"SENTINEL_SECRET_TOOLS": "Gitleaks, patterns,"})
        assert config.secret_tools == ("gitleaks", "patterns")
        assert config.static_tools == ScanConfig().static_tools

    def test_static_tools_override(self):
        config = ScanConfig.from_env({"SENTINEL_STATIC_TOOLS": "patterns"})
        assert config.static_tools == ("patterns",)

    @pytest.mark.parametrize("value", ["", " , ", ","])
    def test_empty_tool_list_keeps_defaults(self, value):
        config = ScanConfig.from_env({"SENTINEL_SECRET_TOOLS": value})
        assert config.secret_tools == ("trufflehog", "patterns")

    def test_intelligence_settings(self):
        config = ScanConfig.from_env({
            "SENTINEL_INTELLIGENCE": "true",
            "HIBP_API_KEY": "hibp-key",
            "ALIENVAULT_API_KEY": "otx-key",
            "IPQS_API_KEY": "",
        })
        assert config.intelligence_enabled is True
        assert config.enrichment_enabled is False
        assert config.hibp_api_key == "hibp-key"
        assert config.otx_api_key == "otx-key"
        assert config.ipqs_api_key is None


class TestHelpers:

    def test_bounded_timeout(self):
        config = ScanConfig(tool_timeout_ceiling=100)
        assert config.bounded_timeout(25) == 25.0
        assert config.bounded_timeout(900) == 100

    def test_replace_returns_new_instance(self):
        config = ScanConfig()
        fast = config.replace(max_units=10)
        assert fast.max_units == 10
        assert config.max_units == 30

    def test_frozen(self):
        with pytest.raises(AttributeError):
            ScanConfig().max_units = 5
