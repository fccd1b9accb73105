"""Pipeline configuration for drivepipe."""

from __future__ import annotations

import dataclasses
import os
from typing import Any


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class ChangeFeedProfile:
    """MQTT broker settings for the change-feed subscriber.

    The change feed publishes one JSON message per committed document
    change. See :mod:`drivepipe.feed.mqtt` for the message shape.
    """

    broker_host: str = "localhost"
    broker_port: int = 1883
    topic: str = "drivepipe/changes/#"
    client_id: str = "drivepipe-worker"
    username: str | None = None
    password: str | None = None
    keepalive: int = 120
    tls: bool = False
    qos: int = 1


@dataclasses.dataclass(frozen=True)
class PipelineConfig:
    """Pipeline configuration.

    Parameters
    ----------
    oracle_api_key : str or None
        API key for the generative-language endpoint. Only required once
        the oracle is actually invoked.
    oracle_base_url : str
        Base URL of the generative-language REST API.
    oracle_pro_model : str
        Model used for drive analysis and AI jobs.
    oracle_flash_model : str
        Cheaper model used for weekly baseline computation.
    oracle_pro_temperature : float
        Sampling temperature for pro calls.
    oracle_flash_temperature : float
        Sampling temperature for flash calls.
    oracle_flash_max_output_tokens : int
        Output token bound for flash calls.
    oracle_timeout : float
        Total request timeout in seconds for one oracle call.
    vin_decoder_base_url : str
        Base URL of the NHTSA vPIC vehicles API used to decode VINs.
    vin_decoder_timeout : float
        Total request timeout in seconds for one VIN lookup.
    blob_root : str
        Filesystem root of the local blob store.
    signing_secret : str
        HMAC secret used to sign export download URLs.
    signed_url_base : str
        Public base URL that signed download links are built on.
    signed_url_ttl : float
        Lifetime of signed export URLs in seconds. Defaults to 7 days.
    parquet_compression : str
        Parquet codec for columnar files.
    parquet_row_group_size : int
        Rows per parquet row group.
    maintenance_drive_limit : int
        Most recent drives considered by predictive maintenance.
    custom_query_drive_limit : int
        Most recent drives considered by custom queries.
    baseline_window_days : int
        Lookback window of the weekly baseline sweep.
    change_feed_enabled : bool
        Start the MQTT change-feed subscriber with the pipeline.
    change_feed : ChangeFeedProfile
        Broker settings for the change feed.
    """

    oracle_api_key: str | None = None
    oracle_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    oracle_pro_model: str = "gemini-2.5-pro"
    oracle_flash_model: str = "gemini-2.5-flash"
    oracle_pro_temperature: float = 0.3
    oracle_flash_temperature: float = 0.2
    oracle_flash_max_output_tokens: int = 2048
    oracle_timeout: float = 120.0
    vin_decoder_base_url: str = "https://vpic.nhtsa.dot.gov/api/vehicles"
    vin_decoder_timeout: float = 30.0
    blob_root: str = "blobs"
    signing_secret: str = ""
    signed_url_base: str = "https://storage.drivepipe.local"
    signed_url_ttl: float = 7 * 24 * 3600
    parquet_compression: str = "snappy"
    parquet_row_group_size: int = 10_000
    maintenance_drive_limit: int = 30
    custom_query_drive_limit: int = 20
    baseline_window_days: int = 30
    change_feed_enabled: bool = False
    change_feed: ChangeFeedProfile = dataclasses.field(default_factory=ChangeFeedProfile)

    @classmethod
    def from_env(cls, **overrides: Any) -> PipelineConfig:
        """Create configuration from environment variables.

        Reads ``DRIVEPIPE_*`` variables. ``GEMINI_API_KEY`` is accepted as a
        fallback for the oracle key. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        PipelineConfig
            Populated configuration.
        """
        env = os.environ

        feed_kwargs: dict[str, Any] = {}
        _ENV_FEED_MAP = {
            "DRIVEPIPE_MQTT_HOST": "broker_host",
            "DRIVEPIPE_MQTT_TOPIC": "topic",
            "DRIVEPIPE_MQTT_CLIENT_ID": "client_id",
            "DRIVEPIPE_MQTT_USERNAME": "username",
            "DRIVEPIPE_MQTT_PASSWORD": "password",
        }
        for env_key, field_name in _ENV_FEED_MAP.items():
            val = env.get(env_key)
            if val is not None:
                feed_kwargs[field_name] = val
        port_env = env.get("DRIVEPIPE_MQTT_PORT")
        if port_env is not None:
            feed_kwargs["broker_port"] = int(port_env)
        keepalive_env = env.get("DRIVEPIPE_MQTT_KEEPALIVE")
        if keepalive_env is not None:
            feed_kwargs["keepalive"] = int(keepalive_env)
        tls_env = env.get("DRIVEPIPE_MQTT_TLS")
        if tls_env is not None:
            feed_kwargs["tls"] = _env_bool(tls_env, False)

        feed_overrides = overrides.pop("change_feed", None)
        if isinstance(feed_overrides, dict):
            feed_kwargs.update(feed_overrides)
        elif isinstance(feed_overrides, ChangeFeedProfile):
            feed_kwargs = dataclasses.asdict(feed_overrides)

        change_feed = ChangeFeedProfile(**feed_kwargs) if feed_kwargs else ChangeFeedProfile()

        _ENV_CONFIG_MAP = {
            "DRIVEPIPE_ORACLE_BASE_URL": "oracle_base_url",
            "DRIVEPIPE_ORACLE_PRO_MODEL": "oracle_pro_model",
            "DRIVEPIPE_ORACLE_FLASH_MODEL": "oracle_flash_model",
            "DRIVEPIPE_VIN_DECODER_BASE_URL": "vin_decoder_base_url",
            "DRIVEPIPE_BLOB_ROOT": "blob_root",
            "DRIVEPIPE_SIGNING_SECRET": "signing_secret",
            "DRIVEPIPE_SIGNED_URL_BASE": "signed_url_base",
            "DRIVEPIPE_PARQUET_COMPRESSION": "parquet_compression",
        }
        config_kwargs: dict[str, Any] = {"change_feed": change_feed}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        api_key = env.get("DRIVEPIPE_ORACLE_API_KEY") or env.get("GEMINI_API_KEY")
        if api_key:
            config_kwargs["oracle_api_key"] = api_key

        # Numeric settings are parsed separately
        _ENV_FLOAT_MAP = {
            "DRIVEPIPE_ORACLE_TIMEOUT": "oracle_timeout",
            "DRIVEPIPE_VIN_DECODER_TIMEOUT": "vin_decoder_timeout",
            "DRIVEPIPE_SIGNED_URL_TTL": "signed_url_ttl",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = float(val)

        _ENV_INT_MAP = {
            "DRIVEPIPE_PARQUET_ROW_GROUP_SIZE": "parquet_row_group_size",
            "DRIVEPIPE_MAINTENANCE_DRIVE_LIMIT": "maintenance_drive_limit",
            "DRIVEPIPE_CUSTOM_QUERY_DRIVE_LIMIT": "custom_query_drive_limit",
            "DRIVEPIPE_BASELINE_WINDOW_DAYS": "baseline_window_days",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = int(val)

        if "change_feed_enabled" not in overrides:
            config_kwargs["change_feed_enabled"] = _env_bool(env.get("DRIVEPIPE_CHANGE_FEED_ENABLED"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
