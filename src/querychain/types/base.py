"""Base model shared by the querychain pydantic types."""

from enum import Enum
from typing import Any, Dict, Optional, Set

from pydantic import BaseModel, ConfigDict


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


class QueryChainModel(BaseModel):
    """Base model with assignment validation and a compact dict view."""
    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        validate_assignment=True
    )

    def to_dict(self, exclude: Optional[Set[str]] = None) -> Dict[str, Any]:
        """Dump the model with unset fields and empty collections left out.

        Enums become their values. Used for log payloads, so the result only
        needs to be readable, not loadable.
        """
        data = self.model_dump(exclude=exclude, exclude_none=True)
        return {
            key: _plain(value)
            for key, value in data.items()
            if not (isinstance(value, (dict, list, tuple)) and not value)
        }
