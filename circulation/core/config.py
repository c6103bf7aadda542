from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str
    JWT_SECRET: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    LOG_LEVEL: str = "INFO"
    SLOW_REQUEST_THRESHOLD_MS: int = 1000  # 1 segundo

    # Circulación
    LOAN_PERIOD_DAYS: int = 14
    ALERT_LIST_LIMIT: int = 50

    # Job de notificaciones (due soon / overdue)
    NOTIFICATION_SCHEDULER_ENABLED: bool = True
    NOTIFICATION_SWEEP_INTERVAL_SECONDS: int = 3600  # cada hora
    NOTIFICATION_SWEEP_INITIAL_DELAY_SECONDS: int = 5

    # Admin embebido y esquema
    BUILTIN_ADMIN_EMAIL: str = "admin@library.com"
    BUILTIN_ADMIN_PASSWORD: str = "admin123"
    AUTO_CREATE_TABLES: bool = True

    class Config:
        env_file = ".env"


settings = Settings()
