"""
Settings for the order automation and SLA enforcement engine
"""
import os
from typing import List
from dotenv import load_dotenv

# Загружаем переменные окружения из .env файла
load_dotenv()


def _split_env(name: str, default: str) -> List[str]:
    return [part.strip() for part in os.getenv(name, default).split(",") if part.strip()]


class Settings:
    """Configuration of the order automation engine"""

    # ===== LOGGING SETTINGS =====
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    DETAILED_LOGGING: bool = os.getenv("DETAILED_LOGGING", "true").lower() == "true"

    # ===== APPLICATION SETTINGS =====
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # ===== ASSIGNMENT SETTINGS =====
    ASSIGNMENT_GRACE_SECONDS: float = float(os.getenv("ASSIGNMENT_GRACE_SECONDS", "120"))  # 2 минуты на ручное принятие
    CANDIDATE_RESPONSE_TIMEOUT_SECONDS: float = float(os.getenv("CANDIDATE_RESPONSE_TIMEOUT_SECONDS", "300"))
    ASSIGNMENT_POLL_INTERVAL_SECONDS: float = float(os.getenv("ASSIGNMENT_POLL_INTERVAL_SECONDS", "10"))
    ESCALATION_DELAY_SECONDS: float = float(os.getenv("ESCALATION_DELAY_SECONDS", "600"))
    MAX_ASSIGNMENT_CANDIDATES: int = int(os.getenv("MAX_ASSIGNMENT_CANDIDATES", "5"))

    # ===== BUSINESS RULE SETTINGS =====
    PEAK_SURGE_MULTIPLIER: float = float(os.getenv("PEAK_SURGE_MULTIPLIER", "1.2"))
    DAILY_ORDER_LIMIT: int = int(os.getenv("DAILY_ORDER_LIMIT", "10"))
    SERVICE_CITIES: List[str] = _split_env(
        "SERVICE_CITIES",
        "Manila,Quezon City,Makati,Pasig,Taguig,Marikina,San Juan,Mandaluyong,Pasay",
    )

    # ===== CORRECTIVE ACTION SETTINGS =====
    RIDER_INCENTIVE_STEP: int = int(os.getenv("RIDER_INCENTIVE_STEP", "20"))  # ₱ за каждое нарушение
    RIDER_INCENTIVE_CAP: int = int(os.getenv("RIDER_INCENTIVE_CAP", "100"))
    COMPENSATION_PERCENT: int = int(os.getenv("COMPENSATION_PERCENT", "100"))  # % от стоимости доставки
    ESCALATION_ALTERNATIVES: int = int(os.getenv("ESCALATION_ALTERNATIVES", "3"))

    # ===== NOTIFICATION SETTINGS =====
    ADMIN_EMAILS: List[str] = _split_env("ADMIN_EMAILS", "")
    NOTIFICATION_WEBHOOK_URL: str = os.getenv("NOTIFICATION_WEBHOOK_URL", "")
    NOTIFICATION_TIMEOUT: int = int(os.getenv("NOTIFICATION_TIMEOUT", "10"))

    # ===== SCHEDULER SETTINGS =====
    SCHEDULER_TICK_SECONDS: float = float(os.getenv("SCHEDULER_TICK_SECONDS", "1"))
    JOB_STORE_PATH: str = os.getenv("JOB_STORE_PATH", "")
    JOB_PURGE_INTERVAL_SECONDS: float = float(os.getenv("JOB_PURGE_INTERVAL_SECONDS", "300"))  # чистка задач завершенных заказов

    # ===== VALIDATION METHODS =====

    @classmethod
    def validate_automation_config(cls) -> bool:
        """Sanity check of timing and business settings"""
        return all([
            cls.ASSIGNMENT_GRACE_SECONDS >= 0,
            cls.CANDIDATE_RESPONSE_TIMEOUT_SECONDS > 0,
            0 < cls.ASSIGNMENT_POLL_INTERVAL_SECONDS <= cls.CANDIDATE_RESPONSE_TIMEOUT_SECONDS,
            cls.ESCALATION_DELAY_SECONDS >= 0,
            cls.MAX_ASSIGNMENT_CANDIDATES > 0,
            cls.PEAK_SURGE_MULTIPLIER >= 1,
            cls.DAILY_ORDER_LIMIT > 0,
            0 <= cls.COMPENSATION_PERCENT <= 100,
            cls.RIDER_INCENTIVE_CAP >= cls.RIDER_INCENTIVE_STEP >= 0,
            cls.SCHEDULER_TICK_SECONDS > 0,
            cls.JOB_PURGE_INTERVAL_SECONDS > 0,
        ])

    @classmethod
    def use_webhook_notifications(cls) -> bool:
        return bool(cls.NOTIFICATION_WEBHOOK_URL)

    @classmethod
    def to_dict(cls) -> dict:
        """Конвертация настроек в словарь для логирования (без секретов)"""
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "assignment_grace_seconds": cls.ASSIGNMENT_GRACE_SECONDS,
            "candidate_response_timeout_seconds": cls.CANDIDATE_RESPONSE_TIMEOUT_SECONDS,
            "assignment_poll_interval_seconds": cls.ASSIGNMENT_POLL_INTERVAL_SECONDS,
            "escalation_delay_seconds": cls.ESCALATION_DELAY_SECONDS,
            "max_assignment_candidates": cls.MAX_ASSIGNMENT_CANDIDATES,
            "peak_surge_multiplier": cls.PEAK_SURGE_MULTIPLIER,
            "daily_order_limit": cls.DAILY_ORDER_LIMIT,
            "service_cities": cls.SERVICE_CITIES,
            "admin_count": len(cls.ADMIN_EMAILS),
            "webhook_notifications": cls.use_webhook_notifications(),
            "durable_job_store": bool(cls.JOB_STORE_PATH),
            "automation_config_valid": cls.validate_automation_config(),
        }


# Глобальный экземпляр настроек
settings = Settings()

if not settings.validate_automation_config():
    raise ValueError("Invalid automation configuration. Check your environment variables.")
