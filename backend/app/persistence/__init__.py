"""
Design persistence.

PersistenceGateway is the save/load contract used by autosave and the
session; SqlPersistenceGateway stores designs through SQLAlchemy.
"""

from app.persistence.gateway import PersistenceGateway, SaveOptions
from app.persistence.validator import DesignValidationResult, repair_data, validate_data
from app.persistence.sql_gateway import SqlPersistenceGateway

__all__ = [
    "PersistenceGateway",
    "SaveOptions",
    "DesignValidationResult",
    "repair_data",
    "validate_data",
    "SqlPersistenceGateway",
]
