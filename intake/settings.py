import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    API_KEY: str = os.getenv("API_KEY", "")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Lending backend (source of truth for application records)
    BACKEND_BASE_URL: str = os.getenv("BACKEND_BASE_URL", "http://localhost:4010")
    BACKEND_TIMEOUT_SEC: float = float(os.getenv("BACKEND_TIMEOUT_SEC", "15.0"))
    # Statement analysis is slow on the bank side; give it its own budget.
    STATEMENT_TIMEOUT_SEC: float = float(os.getenv("STATEMENT_TIMEOUT_SEC", "60.0"))

    # Wizard session storage
    SESSION_TTL_SEC: int = int(os.getenv("SESSION_TTL_SEC", "3600"))
    # Must outlive the slowest transition (statement check + OTP issuance).
    SESSION_LOCK_TTL_MS: int = int(os.getenv("SESSION_LOCK_TTL_MS", "90000"))

    # Step 1: product selection
    AMOUNT_MIN: int = int(os.getenv("AMOUNT_MIN", "10000"))
    AMOUNT_MAX: int = int(os.getenv("AMOUNT_MAX", "3000000"))
    ALLOWED_TERMS: str = os.getenv("ALLOWED_TERMS", "3,6,12,24")
    PRODUCT_TYPES: str = os.getenv("PRODUCT_TYPES", "credit,installment")
    DEFAULT_PRODUCT_TYPE: str = os.getenv("DEFAULT_PRODUCT_TYPE", "installment")
    DEFAULT_TERM: str = os.getenv("DEFAULT_TERM", "3")

    # Step 2: client data
    IIN_LENGTH: int = int(os.getenv("IIN_LENGTH", "12"))
    PHONE_COUNTRY_CODE: str = os.getenv("PHONE_COUNTRY_CODE", "7")
    PHONE_NATIONAL_DIGITS: int = int(os.getenv("PHONE_NATIONAL_DIGITS", "10"))
    PAYMENT_DAY_MIN: int = int(os.getenv("PAYMENT_DAY_MIN", "1"))
    PAYMENT_DAY_MAX: int = int(os.getenv("PAYMENT_DAY_MAX", "28"))
    # Fixed repayment schedule required by the backend loan record
    REDEMPTION_METHOD: str = os.getenv("REDEMPTION_METHOD", "ANNUITY")

    # Step 3: statement upload
    STATEMENT_BANKS: str = os.getenv("STATEMENT_BANKS", "kaspi,halyk")
    DEFAULT_STATEMENT_BANK: str = os.getenv("DEFAULT_STATEMENT_BANK", "kaspi")
    STATEMENT_MAX_BYTES: int = int(os.getenv("STATEMENT_MAX_BYTES", str(10 * 1024 * 1024)))

    # Step 4: OTP
    OTP_LENGTH: int = int(os.getenv("OTP_LENGTH", "6"))
    OTP_RESEND_COOLDOWN_SEC: int = int(os.getenv("OTP_RESEND_COOLDOWN_SEC", "60"))

    # Security & Privacy
    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"
    ADMIN_RBAC_ENABLED: bool = os.getenv("ADMIN_RBAC_ENABLED", "true").lower() == "true"
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")


def csv_list(value: str) -> list:
    return [x.strip() for x in (value or "").split(",") if x.strip()]


settings = Settings()
