"""
Error taxonomy for the content graph engine.

- ValidationError: a link request violates the data model
- NotFoundError: an update targets a relationship id that does not exist
- StorageError: the injected key-value store failed
- LayoutCancelledError: a layout run was abandoned through its token
"""

from typing import Optional


class GraphEngineError(Exception):
    """Base class for all engine errors"""


class ValidationError(GraphEngineError):
    """Raised when a relationship request is invalid"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class NotFoundError(GraphEngineError):
    """Raised when a relationship id is not present in the store"""

    def __init__(self, link_id: str):
        super().__init__(f"Relationship {link_id} not found")
        self.link_id = link_id


class StorageError(GraphEngineError):
    """Raised when the injected key-value store fails"""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


class LayoutCancelledError(GraphEngineError):
    """Raised when a layout computation is cancelled before it finishes"""

    def __init__(self, iteration: int):
        super().__init__(f"Layout cancelled after {iteration} iterations")
        self.iteration = iteration
