"""Result materialization.

Drivers return plain dicts; builders hand results back as ``Record``
objects, JSON text or a pandas ``DataFrame``.
"""

import json
from typing import Any, Dict, Iterable

import pandas as pd


class Record(dict):
    """A result row with attribute access.

    Example:
        >>> row = Record({"id": 1, "name": "Ann"})
        >>> row.name
        'Ann'
        >>> row["id"]
        1
    """

    def __getattr__(self, name: str) -> Any:
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"Record has no field '{name}'") from None

    def __setattr__(self, name: str, value: Any) -> None:
        self[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self[name]
        except KeyError:
            raise AttributeError(f"Record has no field '{name}'") from None


class ResultMaterializer:
    """Convert raw driver results."""

    def to_object(self, result: Any) -> Any:
        """Rows become ``Record`` objects; anything else is returned as-is."""
        if isinstance(result, Record) or result is None:
            return result
        if isinstance(result, dict):
            return Record(result)
        if isinstance(result, (list, tuple)):
            return [self.to_object(row) for row in result]
        return result

    def to_json(self, result: Any) -> Any:
        """JSON text of ``result``. Falsy results are returned unchanged."""
        if not result:
            return result
        return json.dumps(result, default=str)

    def to_dataframe(self, result: Any) -> pd.DataFrame:
        if not result:
            return pd.DataFrame()
        if isinstance(result, dict):
            return pd.DataFrame([result])
        if isinstance(result, Iterable) and not isinstance(result, (str, bytes)):
            return pd.DataFrame(list(result))
        return pd.DataFrame([{"value": result}])

    def stream(self, callback):
        """Wrap a row callback so it receives ``Record`` objects."""
        def receive(row: Dict[str, Any]) -> Any:
            return callback(self.to_object(row))
        return receive
