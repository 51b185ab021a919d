# wine_api/core/config.py
import os
from urllib.parse import quote_plus

from dotenv import load_dotenv


MIN_JWT_SECRET_BYTES = 32
ALLOWED_JWT_ALGORITHMS = ("HS256", "HS384", "HS512")

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


def str_to_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def merge_unique(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for v in items:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def mask_secret(value: str | None) -> str:
    """Keep the first and last 8 characters of an identifier for log lines."""
    if not value or len(value) < 16:
        return "***"
    return f"{value[:8]}...{value[-8:]}"


class Settings:
    def __init__(self) -> None:
        # Only load .env for local/dev. In prod, env vars come from the service config.
        self.ENV = os.getenv("ENV", "dev").strip().lower()  # dev | prod
        if self.ENV != "prod":
            load_dotenv()

        # ----------------------------
        # Database
        # ----------------------------
        self.DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
        self.DB_HOST = os.getenv("DB_HOST", "")
        self.DB_PORT = os.getenv("DB_PORT", "5432")
        self.DB_NAME = os.getenv("DB_NAME", "")
        self.DB_USER = os.getenv("DB_USER", "")
        self.DB_PASSWORD = os.getenv("DB_PASSWORD", "")
        self.DB_SSLMODE = os.getenv("DB_SSLMODE", "require").strip().lower()

        # ----------------------------
        # CORS
        # ----------------------------
        dev_defaults = [
            "http://localhost:3000",
            "http://localhost:8080",
        ]

        cors_from_env = parse_csv(os.getenv("CORS_ORIGINS"))
        if self.ENV == "prod":
            self.CORS_ORIGINS = merge_unique(cors_from_env)
        else:
            self.CORS_ORIGINS = merge_unique(cors_from_env + dev_defaults)

        # ----------------------------
        # Session tokens
        # ----------------------------
        self.JWT_SECRET = os.getenv("JWT_SECRET", "")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256").strip().upper()

        # Prod must configure the TTL explicitly; dev gets a day.
        ttl_raw = os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "").strip()
        if ttl_raw:
            self.ACCESS_TOKEN_EXPIRE_MINUTES = int(ttl_raw)
        elif self.ENV == "prod":
            self.ACCESS_TOKEN_EXPIRE_MINUTES = 0
        else:
            self.ACCESS_TOKEN_EXPIRE_MINUTES = 1440

        # ----------------------------
        # Google identity tokens
        # ----------------------------
        self.GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "").strip()
        self.GOOGLE_JWKS_URL = os.getenv("GOOGLE_JWKS_URL", GOOGLE_JWKS_URL).strip()
        self.GOOGLE_JWKS_CACHE_SECONDS = int(os.getenv("GOOGLE_JWKS_CACHE_SECONDS", "3600"))

        # ----------------------------
        # Development conveniences
        # ----------------------------
        # Email-only login skips identity verification entirely.
        self.ENABLE_DEV_LOGIN = str_to_bool(os.getenv("ENABLE_DEV_LOGIN"), default=False)

        self._validate_prod()

    def _validate_prod(self) -> None:
        if self.ENV != "prod":
            return

        missing: list[str] = []

        if not self.JWT_SECRET:
            missing.append("JWT_SECRET")
        if not self.GOOGLE_CLIENT_ID:
            missing.append("GOOGLE_CLIENT_ID")
        if self.ACCESS_TOKEN_EXPIRE_MINUTES <= 0:
            missing.append("ACCESS_TOKEN_EXPIRE_MINUTES")

        if not self.DATABASE_URL:
            if not self.DB_HOST:
                missing.append("DB_HOST")
            if not self.DB_NAME:
                missing.append("DB_NAME")
            if not self.DB_USER:
                missing.append("DB_USER")
            if not self.DB_PASSWORD:
                missing.append("DB_PASSWORD")
            if self.DB_SSLMODE != "require":
                raise RuntimeError("DB_SSLMODE must be 'require' in prod")

        if not self.CORS_ORIGINS:
            missing.append("CORS_ORIGINS")

        cors_joined = ",".join(self.CORS_ORIGINS)
        if "localhost" in cors_joined or "127.0.0.1" in cors_joined:
            raise RuntimeError("CORS_ORIGINS contains localhost/dev origins in prod")

        if self.ENABLE_DEV_LOGIN:
            raise RuntimeError("ENABLE_DEV_LOGIN must not be enabled in prod")

        if self.JWT_SECRET and len(self.JWT_SECRET.encode("utf-8")) < MIN_JWT_SECRET_BYTES:
            raise RuntimeError(f"JWT_SECRET must be at least {MIN_JWT_SECRET_BYTES} bytes in prod")

        if self.JWT_ALGORITHM not in ALLOWED_JWT_ALGORITHMS:
            raise RuntimeError(f"JWT_ALGORITHM must be one of {', '.join(ALLOWED_JWT_ALGORITHMS)}")

        if missing:
            raise RuntimeError(f"Missing required prod env vars: {', '.join(missing)}")

    @property
    def is_prod(self) -> bool:
        return self.ENV == "prod"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if not self.DB_HOST:
            return "sqlite:///./wine_reviewer.db"
        encoded_password = quote_plus(self.DB_PASSWORD)
        return (
            f"postgresql+psycopg2://{self.DB_USER}:{encoded_password}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            f"?sslmode={self.DB_SSLMODE}"
        )


settings = Settings()


def require_jwt_secret() -> None:
    if not settings.JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set")
