from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from app.canvas.types import Snapshot
from app.config import SAVE_BACKUP, SAVE_COMPRESS, SAVE_RETRIES, SAVE_VALIDATE
from app.persistence.validator import DesignValidationResult


@dataclass
class SaveOptions:
    retries: int = SAVE_RETRIES
    validate_data: bool = SAVE_VALIDATE
    compress: bool = SAVE_COMPRESS
    backup: bool = SAVE_BACKUP


class PersistenceGateway(ABC):
    """
    Save/load contract for canvas designs.

    Implementations raise PersistenceError from save_design on failure and
    return None from load_design when nothing usable is stored.
    """

    @abstractmethod
    def save_design(self, snapshot: Snapshot, options: Optional[SaveOptions] = None) -> None:
        pass

    @abstractmethod
    def load_design(self, project_id: Optional[str] = None) -> Optional[Snapshot]:
        pass

    @abstractmethod
    def validate_data(self, snapshot: Snapshot) -> DesignValidationResult:
        pass

    @abstractmethod
    def repair_data(self, snapshot: Snapshot) -> Snapshot:
        pass
