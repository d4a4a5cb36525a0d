from __future__ import annotations

from dataclasses import dataclass

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from podrole.errors import FatalStartupError


@dataclass(frozen=True)
class MemberIdentity:
    """Who this process is and which pod it speaks for."""

    member_id: str
    election_group: str
    namespace: str
    pod_name: str

    def log_fields(self) -> dict[str, str]:
        return {
            "member_id": self.member_id,
            "election_group": self.election_group,
            "namespace": self.namespace,
        }


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    # Identity (required)
    member_id: str = Field(validation_alias="MEMBER_ID", min_length=1)
    election_group: str = Field(validation_alias="ELECTION_GROUP", min_length=1)
    pod_name: str = Field(validation_alias="POD_NAME", min_length=1)
    namespace: str = Field(validation_alias="NAMESPACE", min_length=1)

    # Lease timing, in seconds
    lease_duration: int = Field(default=15, validation_alias="LEASE_DURATION", gt=0)
    renewal_deadline: int = Field(default=10, validation_alias="RENEWAL_DEADLINE", gt=0)
    retry_period: int = Field(default=5, validation_alias="RETRY_PERIOD", gt=0)

    # Role label reconciliation
    reconcile_interval: float = Field(default=1.0, validation_alias="RECONCILE_INTERVAL", gt=0)
    shutdown_grace: float = Field(default=5.0, validation_alias="SHUTDOWN_GRACE", gt=0)

    # Metrics endpoint
    metrics_host: str = Field(
        default="0.0.0.0",  # nosec B104 - intentional for container deployments
        validation_alias="METRICS_HOST",
    )
    metrics_port: int = Field(default=8088, validation_alias="METRICS_PORT")

    # Observability
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(default=True, validation_alias="LOG_JSON")

    # Out-of-cluster development only
    kubeconfig: str | None = Field(default=None, validation_alias="KUBECONFIG")

    @model_validator(mode="after")
    def _validate_timing_order(self) -> Settings:
        """Reject timings that would make the lease flap."""
        if self.renewal_deadline >= self.lease_duration:
            raise ValueError(
                f"RENEWAL_DEADLINE ({self.renewal_deadline}s) must be smaller than "
                f"LEASE_DURATION ({self.lease_duration}s)"
            )
        if self.retry_period >= self.renewal_deadline:
            raise ValueError(
                f"RETRY_PERIOD ({self.retry_period}s) must be smaller than "
                f"RENEWAL_DEADLINE ({self.renewal_deadline}s)"
            )
        return self

    @property
    def identity(self) -> MemberIdentity:
        return MemberIdentity(
            member_id=self.member_id,
            election_group=self.election_group,
            namespace=self.namespace,
            pod_name=self.pod_name,
        )


def load_settings(**overrides: object) -> Settings:
    """Read settings from the environment once at startup.

    Raises:
        FatalStartupError: If a required value is missing or invalid
    """
    try:
        return Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as e:
        raise FatalStartupError(f"Invalid configuration: {e}") from e
