from typing import Optional, Any
from abc import ABC, abstractmethod

from app.repositories.base_repository import BaseRepository
from app.core.exceptions import AppError, UnknownStepError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseService(ABC):
    """Base class for workflow services.

    ``execute`` runs ``validate`` and then ``run``. Domain errors and
    ``UnknownStepError`` pass through untouched; anything else is logged and
    wrapped in a generic ``AppError``.
    """

    def __init__(self, repository: Optional[BaseRepository] = None):
        self.repository = repository
        self.logger = LOGGER

    async def execute(self, *args, **kwargs) -> Any:
        try:
            self.validate(*args, **kwargs)
            return await self.run(*args, **kwargs)

        except (AppError, UnknownStepError):
            raise

        except Exception as e:
            self.logger.error(
                f"{self.__class__.__name__} failed: {str(e)}",
                exc_info=True,
                extra={"service": self.__class__.__name__},
            )
            raise AppError(f"{self.__class__.__name__} failed: {str(e)}", original_error=e) from e

    def validate(self, *args, **kwargs):
        """Check service input before any work is done.

        Raises:
            ValidationError: If input is invalid
        """

    @abstractmethod
    async def run(self, *args, **kwargs) -> Any:
        """Core service logic."""
