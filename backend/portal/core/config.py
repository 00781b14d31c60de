from typing import List, Union
from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Insurance Policy Portal"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    MAGIC_LINK_EXPIRE_MINUTES: int = 60 * 24

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = ["http://localhost:5173", "http://localhost:3000"]

    @field_validator("BACKEND_CORS_ORIGINS", mode='before')
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Links sent to clients point at the SPA
    FRONTEND_URL: str = "http://localhost:5173"

    # Database
    SQLALCHEMY_DATABASE_URI: str = "sqlite+aiosqlite:///./sql_app.db"
    SQLALCHEMY_ECHO: bool = False

    LOG_LEVEL: str = "INFO"

    # Object storage: "local" keeps files under STORAGE_DIR, "supabase" uses the storage REST API
    STORAGE_BACKEND: str = "local"
    STORAGE_DIR: str = "./storage"
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""
    HTTP_TIMEOUT: int = 60

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")

settings = Settings()
