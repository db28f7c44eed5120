from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pathlib import Path

# Get the project directory (parent of app directory)
BACKEND_DIR = Path(__file__).parent.parent
ENV_FILE = BACKEND_DIR / ".env"


class LoanPolicy(BaseModel):
    """Policy knobs consumed by the loan and queue engine.

    Passed explicitly into every engine entry point instead of being read from
    the global settings, so the engine can be exercised with any policy.
    """
    system_max_active_loans: int = 3
    enable_queue_system: bool = True
    auto_approve_low_risk: bool = True
    min_trust_score_auto_approve: int = 80
    max_loan_days: int = 7
    honor_category_max_loan_days: bool = False
    pickup_window_hours: int = 12
    queue_notification_hours: int = 24
    extension_days: int = 3
    late_penalty_hours: float = 1.0
    damage_penalty_hours: float = 5.0
    lost_penalty_hours: float = 10.0

    model_config = ConfigDict(frozen=True)


class Settings(BaseSettings):
    # Server settings (non-confidential, can have defaults)
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    timezone: str = "America/Bogota"

    # Database settings - either a full URL or the parts below
    database_url: Optional[str] = None  # e.g. sqlite:///./wellness.db for local runs
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "wellness"
    db_user: str = "wellness"
    db_password: str = ""  # confidential, from .env
    db_ssl_mode: str = "prefer"  # Options: disable, allow, prefer, require, verify-ca, verify-full
    db_ssl_cert: Optional[str] = None
    db_ssl_key: Optional[str] = None
    db_ssl_root_cert: Optional[str] = None

    # JWT settings - confidential values from .env
    jwt_secret_key: str  # Required from .env (confidential - no default)
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 1440

    # MQTT settings - used to push user notifications
    mqtt_enabled: bool = True
    mqtt_broker: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None
    mqtt_notification_topic_format: str = "wellness/users/{user_id}/notifications"
    mqtt_use_tls: bool = False
    mqtt_tls_insecure: bool = False
    mqtt_ca_cert: Optional[str] = None
    mqtt_client_cert: Optional[str] = None
    mqtt_client_key: Optional[str] = None

    # Background sweep (queue expiry, overdue loans, unclaimed pickups)
    scheduler_enabled: bool = True
    sweep_interval_minutes: int = 15

    # Loan & queue policy
    system_max_active_loans: int = 3
    enable_queue_system: bool = True
    auto_approve_low_risk: bool = True
    min_trust_score_auto_approve: int = 80
    max_loan_days: int = 7
    honor_category_max_loan_days: bool = False
    pickup_window_hours: int = 12
    queue_notification_hours: int = 24
    extension_days: int = 3
    late_penalty_hours: float = 1.0
    damage_penalty_hours: float = 5.0
    lost_penalty_hours: float = 10.0

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else ".env",
        case_sensitive=False,
    )

    def loan_policy(self) -> LoanPolicy:
        """Snapshot of the policy knobs for the engine."""
        return LoanPolicy(**{name: getattr(self, name) for name in LoanPolicy.model_fields})


settings = Settings()


def get_loan_policy() -> LoanPolicy:
    """FastAPI dependency; overridable in tests."""
    return settings.loan_policy()
