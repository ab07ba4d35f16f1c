"""
Unit Tests for Configuration Module

These tests verify that the configuration system works correctly:
- Default values are applied when needed
- Router addresses and endpoints have a valid format
- Validation catches invalid configurations
- Property methods work as expected

Run with:
    pytest tests/unit/test_config.py -v
"""

import pytest
from core.config import ADDRESS_PATTERN, NATIVE_TOKEN_SENTINEL, Settings, settings, validate_configuration


class TestConfigurationLoading:
    """Test that configuration loads correctly"""

    def test_endpoints_are_http_urls(self):
        """Verify subgraph and RPC endpoints are set"""
        assert settings.subgraph_url.startswith("http")
        assert settings.rpc_url.startswith("http")

    def test_app_port_is_valid_integer(self):
        """Verify app port is a valid integer"""
        assert isinstance(settings.app_port, int)
        assert 1 <= settings.app_port <= 65535

    def test_debug_mode_is_boolean(self):
        """Verify debug setting is a boolean"""
        assert isinstance(settings.debug, bool)

    def test_log_level_is_set(self):
        assert settings.log_level
        assert isinstance(settings.log_level, str)


class TestRouterAddresses:
    """Allowance spenders and the native sentinel"""

    def test_default_routers(self):
        config = Settings()
        assert config.exchange_add_address == "0xFd8A61F94604aeD5977B31930b48f1a94ff3a195"
        assert config.exchange_remove_address == "0x418915329226AE7fCcB20A2354BbbF0F6c22Bd92"

    def test_addresses_match_pattern(self):
        for address in (
            settings.exchange_add_address,
            settings.exchange_remove_address,
            settings.native_token_address,
        ):
            assert ADDRESS_PATTERN.match(address), address

    def test_native_defaults(self):
        config = Settings()
        assert config.native_token_address == NATIVE_TOKEN_SENTINEL
        assert config.native_token_symbol == "ETH"


class TestConfigurationProperties:
    """Test property methods and computed values"""

    def test_cors_origins_list_splits_and_strips(self):
        config = Settings(cors_origins=" http://a.test , http://b.test,, ")
        assert config.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_hourly_lookback_defaults_to_one_week(self):
        assert Settings().hourly_lookback_days == 7


class TestConfigurationValidation:
    """Test configuration validation function"""

    def test_validate_configuration_succeeds(self):
        """Verify validation passes with default configuration"""
        try:
            validate_configuration(Settings())
        except ValueError as e:
            pytest.fail(f"Configuration validation failed: {e}")

    def test_rejects_malformed_router(self):
        with pytest.raises(ValueError, match="EXCHANGE_ADD_ADDRESS"):
            validate_configuration(Settings(exchange_add_address="0x1234"))

    def test_rejects_identical_spenders(self):
        address = "0xFd8A61F94604aeD5977B31930b48f1a94ff3a195"
        with pytest.raises(ValueError, match="must differ"):
            validate_configuration(
                Settings(exchange_add_address=address, exchange_remove_address=address.lower())
            )

    def test_rejects_non_http_endpoint(self):
        with pytest.raises(ValueError, match="RPC_URL"):
            validate_configuration(Settings(rpc_url="wss://node.example"))

    @pytest.mark.parametrize("field", ["request_timeout", "pair_refresh_interval", "swaps_refresh_interval"])
    def test_rejects_non_positive_durations(self, field):
        with pytest.raises(ValueError):
            validate_configuration(Settings(**{field: 0}))

    def test_rejects_zero_lookback(self):
        with pytest.raises(ValueError, match="HOURLY_LOOKBACK_DAYS"):
            validate_configuration(Settings(hourly_lookback_days=0))

    def test_rejects_invalid_port(self):
        with pytest.raises(ValueError, match="port"):
            validate_configuration(Settings(app_port=70000))

    def test_rejects_unknown_log_level(self):
        with pytest.raises(ValueError, match="LOG_LEVEL"):
            validate_configuration(Settings(log_level="VERBOSE"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
