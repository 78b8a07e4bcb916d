# ipd_billing/core/config.py
import os
from typing import List, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "IPD Billing Ledger")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # ---------- Ledger Store (MySQL shared creds) ----------
    MYSQL_HOST: str = os.getenv("MYSQL_HOST", "")
    MYSQL_PORT: int = int(os.getenv("MYSQL_PORT", "3306"))
    MYSQL_USER: str = os.getenv("MYSQL_USER", "")
    MYSQL_PASSWORD: str = os.getenv("MYSQL_PASSWORD", "")
    MYSQL_DB: str = os.getenv("MYSQL_DB", "ipd_billing")
    DB_DRIVER: str = os.getenv("DB_DRIVER", "pymysql")

    # explicit URL wins; otherwise MySQL when a host is configured,
    # else a local sqlite file
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL") or None
    DB_ECHO: bool = _flag("DB_ECHO")

    def database_uri(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.MYSQL_HOST and self.MYSQL_USER:
            return (
                f"mysql+{self.DB_DRIVER}://{quote_plus(self.MYSQL_USER)}:{quote_plus(self.MYSQL_PASSWORD)}"
                f"@{self.MYSQL_HOST}:{self.MYSQL_PORT}/{self.MYSQL_DB}")
        return "sqlite:///./ipd_billing.db"

    # ---------- Billing flags ----------
    BILLING_CURRENCY_SYMBOL: str = os.getenv("BILLING_CURRENCY_SYMBOL", "₹")
    BILLING_DEFAULT_ROOM_TYPE: str = os.getenv("BILLING_DEFAULT_ROOM_TYPE",
                                               "GENERAL_WARD")

    # legacy payload recovery
    LEGACY_RATE_TOLERANCE_PCT: float = float(
        os.getenv("LEGACY_RATE_TOLERANCE_PCT", "2") or 0.0)
    # "categories" | "stored_amount"
    LEGACY_RECONCILIATION: str = os.getenv("LEGACY_RECONCILIATION",
                                           "categories").lower()

    # some stores refuse hard deletes; callers then soft-delete via status
    LEDGER_ALLOW_HARD_DELETE: bool = _flag("LEDGER_ALLOW_HARD_DELETE", "true")

    # ---------- Deposits ----------
    DEPOSIT_RECEIPT_PREFIX: str = os.getenv("DEPOSIT_RECEIPT_PREFIX", "DEP")
    DEPOSIT_RECEIPT_PADDING: int = int(
        os.getenv("DEPOSIT_RECEIPT_PADDING", "6"))


settings = Settings()
