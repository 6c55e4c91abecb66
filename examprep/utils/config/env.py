from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "examprep"
    environment: str = "local"
    debug: bool = True
    log_level: str = "INFO"

    mongo_scheme: str = "mongodb+srv"
    mongo_port: int = 27017
    mongo_host: str = "localhost"
    mongo_db: str = "examprep"
    mongo_password: str | None = None
    mongo_params: str | None = None
    mongo_user: str | None = None

    jwt_algorithm: str = "HS256"
    jwt_secret_key: str = "very-secret-key"
    access_token_expires_minutes: int = 30
    refresh_token_expires_days: int = 7

    redis_db: int = 0
    redis_port: int = 6379
    redis_host: str = "localhost"
    redis_password: str | None = None

    auto_submit_enabled: bool = True
    submit_retry_limit: int = 3
    leaderboard_size: int = 10
    global_leaderboard_size: int = 20
    leaderboard_rate_limit_seconds: int = 2

    model_config = SettingsConfigDict(env_file=(".env",), case_sensitive=True)

    @property
    def mongo_uri(self) -> str:
        auth = ""
        if self.mongo_user and self.mongo_password:
            auth = f"{self.mongo_user}:{self.mongo_password}@"
        host = self.mongo_host
        if self.mongo_scheme == "mongodb":
            # SRV records carry the port; plain URIs need it spelled out
            host = f"{self.mongo_host}:{self.mongo_port}"
        params = self.mongo_params or "retryWrites=true&w=majority"
        return f"{self.mongo_scheme}://{auth}{host}/{self.mongo_db}?{params}"


settings = Settings()
