from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://taskpulse:taskpulse@db:5432/taskpulse"
  app_secret: str = "dev-secret-change-me"
  app_version: str = "0.1.0"
  api_prefix: str = "/api/v1"
  api_docs_enabled: bool = True

  access_token_ttl_seconds: int = 7 * 24 * 3600
  cookie_secure: bool = False
  cookie_domain: str | None = None
  password_hash_rounds: int = 12

  rate_limit_login_ip_per_minute: int = 60
  rate_limit_login_email_per_minute: int = 20
  rate_limit_register_ip_per_minute: int = 20
  redis_url: str | None = None

  cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,testserver"

  notification_list_limit: int = 50
  log_level: str = "INFO"

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]

  def is_test_database(self) -> bool:
    db_name = self.database_url.rsplit("/", 1)[-1]
    return "test" in db_name


settings = Settings()
