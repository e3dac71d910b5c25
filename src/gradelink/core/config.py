# gradelink/core/config.py
from dotenv import load_dotenv
load_dotenv(".env")
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field
from typing import Optional, Literal

class Settings(BaseSettings):
    # model_config 会自动加载 .env 文件
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    APP_ENV: str = "production"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # --- Central directory database ---
    # DB_URL takes precedence over the individual parts (handy for sqlite in dev/test)
    DB_URL: Optional[str] = None
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_NAME: str = "gradelink"

    @computed_field
    @property
    def DATABASE_URL(self) -> str:
        if self.DB_URL:
            return self.DB_URL
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # --- Tenant data plane ---
    # database: one physical database per school; schema: one schema per school in a shared database
    TENANT_STRATEGY: Literal["database", "schema"] = "database"
    TENANT_PREFIX: str = "tenant_"

    TENANT_DB_URL: Optional[str] = None
    DB_TENANT_DATA_HOST: Optional[str] = None
    DB_TENANT_DATA_PORT: int = 5432
    DB_TENANT_DATA_USER: Optional[str] = None
    DB_TENANT_DATA_PASSWORD: Optional[str] = None
    DB_TENANT_DATA_NAME: Optional[str] = None

    @computed_field
    @property
    def DATABASE_URL_TENANT_DATA(self) -> str:
        # 未单独配置数据平面时，与中心库共用同一个服务器
        if self.TENANT_DB_URL:
            return self.TENANT_DB_URL
        if not self.DB_TENANT_DATA_HOST:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.DB_TENANT_DATA_USER}:{self.DB_TENANT_DATA_PASSWORD}"
            f"@{self.DB_TENANT_DATA_HOST}:{self.DB_TENANT_DATA_PORT}/{self.DB_TENANT_DATA_NAME}"
        )

    # Directory holding one file per tenant when the data plane is sqlite
    TENANT_SQLITE_DIR: str = "var/tenants"

    # --- Tenant pools ---
    TENANT_POOL_SIZE: int = Field(5, description="Steady connections kept per tenant pool")
    TENANT_MAX_OVERFLOW: int = Field(5, description="Burst connections allowed above pool size")
    TENANT_POOL_TIMEOUT: float = Field(10.0, description="Seconds to wait for a free pooled connection")
    TENANT_POOL_RECYCLE: int = Field(1800, description="Recycle idle connections after this many seconds")
    TENANT_POOL_CACHE_SIZE: int = Field(64, description="Max tenant pools kept alive; least recently used are disposed")
    TENANT_CONNECT_TIMEOUT: float = Field(5.0, description="Connection establishment timeout in seconds")
    TENANT_QUERY_TIMEOUT: float = Field(15.0, description="Upper bound for one tenant-side or central-side operation")

    # JWT
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Length of the login secret generated for students and teachers
    GENERATED_PASSWORD_LENGTH: int = 8

    # Logos and other uploaded assets
    UPLOAD_DIR: str = "uploads"

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

settings = Settings()
