from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    unipile_dsn: str | None = None
    unipile_token: str | None = None
    unipile_webhook_secret: str | None = None
    unipile_timeout_seconds: float = 30.0
    linkedin_auto_call_enabled: bool = True
    linkedin_batch_call_enabled: bool = False
    default_voice_agent_id: str = "24"
    internal_api_url: str = "http://localhost:3004"
    auto_call_api_timeout_seconds: float = 10.0
    webhook_dedup_capacity: int = 1000
    acceptance_max_age_hours: int = 24
    call_history_lookback_days: int = 7
    call_logs_table: str = "call_logs_voiceagent"
    batch_invitation_delay_ms: int = 2000

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
