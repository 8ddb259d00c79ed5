from .db import GouravaStore, ImportFormatError
from .result import RecordNotFound, Result, StoreClosedError, StoreError

VERSION = "1.0.0"

__all__ = [
    "GouravaStore",
    "ImportFormatError",
    "RecordNotFound",
    "Result",
    "StoreClosedError",
    "StoreError",
    "VERSION",
]
