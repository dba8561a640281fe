import ssl
from functools import lru_cache
from typing import Literal, Optional

from pydantic import PositiveFloat, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RelaySettings(BaseSettings):
    """Relay configuration, read from RELAY_* environment variables or .env."""

    # destination
    destination_url: str = "http://localhost:8080/nifi-api"
    port_name: str = "Provenance Input"
    timeout_seconds: PositiveFloat = 30.0
    compress: bool = True
    tls_verify: bool = True
    tls_ca_bundle: Optional[str] = None
    tls_client_cert: Optional[str] = None
    tls_client_key: Optional[str] = None

    # forwarding
    state_file: str = "./conf/relay.state"
    atomic_state_writes: bool = False
    batch_size: PositiveInt = 1000
    tick_interval_seconds: PositiveFloat = 5.0
    transaction_id_attribute: str = "relay.transaction.id"
    relay_id: str = "relay"

    # wire payload
    nifi_url: Optional[str] = None
    application_name: Optional[str] = None
    platform: str = "nifi"

    # push intake
    intake_capacity: PositiveInt = 10_000
    intake_overflow: Literal["block", "drop_oldest", "error"] = "block"
    stream_url: Optional[str] = None
    stream_channel: str = "/topic/events"
    stream_poll_seconds: PositiveFloat = 30.0

    # observability
    log_level: str = "INFO"
    metrics_port: Optional[int] = None

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _upcase_level(cls, v: str) -> str:
        return v.upper()

    def ssl_context(self) -> Optional[ssl.SSLContext]:
        """TLS context for the destination, or None to use httpx defaults."""
        if not (self.tls_ca_bundle or self.tls_client_cert or not self.tls_verify):
            return None
        ctx = ssl.create_default_context(cafile=self.tls_ca_bundle)
        if not self.tls_verify:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        if self.tls_client_cert:
            ctx.load_cert_chain(self.tls_client_cert, self.tls_client_key)
        return ctx


@lru_cache()
def get_settings() -> RelaySettings:
    return RelaySettings()
