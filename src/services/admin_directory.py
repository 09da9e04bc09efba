"""
Admin directory: who receives critical order notifications
"""
from abc import ABC, abstractmethod
from typing import List, Optional
from config.settings import settings
from src.utils.logger import logger


class AdminDirectory(ABC):

    @abstractmethod
    async def get_admin_emails(self) -> List[str]:
        ...


class StaticAdminDirectory(AdminDirectory):
    """Admin addresses from configuration (ADMIN_EMAILS)"""

    def __init__(self, emails: Optional[List[str]] = None):
        self.emails = list(settings.ADMIN_EMAILS if emails is None else emails)
        if not self.emails:
            logger.warning("No admin contacts configured; escalations will only be logged")

    async def get_admin_emails(self) -> List[str]:
        return [email for email in self.emails if email]
