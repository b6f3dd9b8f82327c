from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./weblog.db"
    SQL_ECHO: bool = False
    APP_VERSION: str = "0.1.0"
    BUILD_TIME: str = "local"
    LOG_LEVEL: str = "INFO"
    WEBLOG_LOG_LEVEL: str = ""  # 비우면 LOG_LEVEL을 따름

    # 요청 로깅 인터셉터 설정
    WEBLOG_POINTCUT: str = "weblog.api.controllers.*"  # 콤마로 여러 패턴 지정 가능
    WEBLOG_BIND_PATTERN: str = "find_by_id*"
    WEBLOG_MAX_VALUE_CHARS: int = 2000

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

settings = Settings()
