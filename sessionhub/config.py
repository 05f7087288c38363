from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.
    Uses pydantic for validation and type safety.
    """
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    
    # Session secret must be cryptographically random and kept secure
    session_secret_key: str
    
    database_url: str = "sqlite:///./sessionhub.db"
    redis_url: str = "redis://localhost:6379/0"
    
    # Session lifetime in hours
    session_expire_hours: int = 24
    
    # Cookie security settings
    # secure=True enforces HTTPS only - must be True in production
    cookie_name: str = "sid"
    cookie_secure: bool = False
    cookie_domain: str = "localhost"
    cookie_httponly: bool = True
    cookie_samesite: str = "lax"
    
    # Password recovery tokens live in Redis under this prefix
    forgot_password_prefix: str = "forget-password:"
    password_recovery_ttl_seconds: int = 60 * 60 * 24 * 3
    frontend_url: str = "http://localhost:5173"
    
    # Outbound email; an empty key disables delivery
    resend_api_key: str = ""
    email_from: str = "Sessions <noreply@localhost>"
    
    sessions_page_max: int = 50
    erasure_max_attempts: int = 3
    
    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance. Load once, reuse throughout application lifecycle.
    """
    return Settings()
