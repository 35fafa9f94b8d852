"""Settings for the secure server/client pair, loaded from the environment and `.env`."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, model_validator


# Upper bound for the transport's reconnect backoff while waiting for readiness
MAX_RECONNECT_BACKOFF_CEILING_MS = 3_000


class CertificateSettings(BaseModel):
    common_name: str = "localhost"
    country: str = "UK"
    organization: str = "Organization"
    organizational_unit: str = "Organization Sector"
    email: str = "example@gmail.com"
    key_size: int = Field(default=2048, ge=1024)
    valid_days: int = Field(default=365, gt=0)

    def subject_fields(self) -> list[tuple[str, str]]:
        return [
            ("commonName", self.common_name),
            ("countryName", self.country),
            ("organizationName", self.organization),
            ("organizationalUnitName", self.organizational_unit),
            ("emailAddress", self.email),
        ]


class GrpcSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=4440, ge=0, le=65535)
    client_host: str = "127.0.0.1"
    # This maps to GRPC option grpc.max_reconnect_backoff_ms
    max_reconnect_backoff_ms: int = Field(default=3_000, gt=0, le=MAX_RECONNECT_BACKOFF_CEILING_MS)
    ready_timeout_s: float = Field(default=5.0, gt=0)
    send_interval_s: float = Field(default=2.0, gt=0)
    send_timeout_s: float = Field(default=5.0, gt=0)
    shutdown_grace_s: float = Field(default=0.5, ge=0)

    @model_validator(mode="after")
    def _validate_ready_timeout(self):
        # Readiness must outlast one full backoff so at least one reconnect is attempted
        if self.ready_timeout_s * 1000 <= self.max_reconnect_backoff_ms:
            raise ValueError(
                "ready_timeout_s must be longer than max_reconnect_backoff_ms "
                f"({self.ready_timeout_s}s <= {self.max_reconnect_backoff_ms}ms)"
            )
        return self

    @property
    def bind_address(self) -> str:
        return f"{self.host}:{self.port}"

    def client_target(self, port: int | None = None) -> str:
        return f"ipv4:{self.client_host}:{self.port if port is None else port}"


class Settings(BaseSettings):
    """Top-level settings; nested groups are overridden with `GRPC__PORT` style keys."""

    DEBUG: bool = Field(default=True)

    grpc: GrpcSettings = Field(default_factory=GrpcSettings)
    certificate: CertificateSettings = Field(default_factory=CertificateSettings)

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


settings = Settings()
