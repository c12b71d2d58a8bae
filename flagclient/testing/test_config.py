from flagclient.config import Config, HTTPConfig
from flagclient.data_store import InMemoryDataStore


def test_can_set_valid_poll_interval():
    config = Config(sdk_key="SDK_KEY", poll_interval=31)
    assert config.poll_interval == 31


def test_minimum_poll_interval_is_enforced():
    config = Config(sdk_key="SDK_KEY", poll_interval=29)
    assert config.poll_interval == 30


def test_trims_trailing_slashes_on_uris():
    config = Config(sdk_key="SDK_KEY", base_uri="https://flags.example.com/", events_uri="https://events.example.com/")

    assert config.base_uri == "https://flags.example.com"
    assert config.latest_features_uri == "https://flags.example.com/sdk/latest-all"
    assert config.events_uri == "https://events.example.com"
    assert config.events_base_uri == "https://events.example.com/bulk"


def test_offline_disables_events():
    config = Config(sdk_key="SDK_KEY", offline=True, send_events=True)
    assert config.send_events is False


def test_send_events_defaults_to_true():
    assert Config(sdk_key="SDK_KEY").send_events is True


def test_default_data_store_is_in_memory():
    assert isinstance(Config(sdk_key="SDK_KEY").data_store, InMemoryDataStore)


def test_outage_logging_default():
    assert Config(sdk_key="SDK_KEY").log_data_source_outage_as_error_after == 60
    assert Config(sdk_key="SDK_KEY", log_data_source_outage_as_error_after=None).log_data_source_outage_as_error_after is None


def test_http_config_defaults():
    http = Config(sdk_key="SDK_KEY").http
    assert http.connect_timeout == 10
    assert http.read_timeout == 15
    assert http.http_proxy is None
    assert http.ca_certs is None
    assert http.disable_ssl_verification is False


def test_custom_http_config():
    config = Config(sdk_key="SDK_KEY", http=HTTPConfig(connect_timeout=1, read_timeout=2, http_proxy='http://proxy:8080'))
    assert config.http.connect_timeout == 1
    assert config.http.read_timeout == 2
    assert config.http.http_proxy == 'http://proxy:8080'


def test_missing_sdk_key_logs_warning(caplog):
    Config(sdk_key='')._validate()
    assert [r.message for r in caplog.records if r.levelname == 'WARNING'] == ['Missing or blank sdk_key.']


def test_missing_sdk_key_is_allowed_offline(caplog):
    Config(sdk_key='', offline=True)._validate()
    assert len(caplog.records) == 0
