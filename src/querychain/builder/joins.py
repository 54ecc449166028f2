from typing import Any, Dict, List, Optional, Union

from querychain.common.exceptions import InvalidJoinError
from querychain.constants.sql import JoinType
from querychain.types.query import JoinSpec


# Join markers accepted besides the type names themselves
JOIN_MARKERS: Dict[str, JoinType] = {
    "[><]": JoinType.INNER,
    "[>]": JoinType.LEFT,
    "[<]": JoinType.RIGHT,
    "[<>]": JoinType.FULL,
}


class JoinComposer:
    """Validate join requests and turn them into ``JoinSpec`` objects."""

    def join_type(self, value: Union[str, JoinType]) -> JoinType:
        """Normalize a join type name (case-insensitive) or marker.

        Raises:
            InvalidJoinError: If the type is not INNER, LEFT, RIGHT or FULL
        """
        if isinstance(value, JoinType):
            return value
        if isinstance(value, str):
            key = value.strip()
            if key in JOIN_MARKERS:
                return JOIN_MARKERS[key]
            key = key.upper()
            if key.endswith(" JOIN"):
                key = key[: -len(" JOIN")].strip()
            if key == "FULL OUTER":
                key = "FULL"
            try:
                return JoinType(key)
            except ValueError:
                pass
        raise InvalidJoinError(
            f"Invalid join type {value!r}. Expected one of INNER, LEFT, RIGHT, FULL",
            details={"join_type": str(value)},
        )

    def _validate_on(self, table: str, on: Any) -> Union[str, List[str], Dict[str, str]]:
        if isinstance(on, str) and on:
            return on
        if isinstance(on, (list, tuple)) and on and all(isinstance(col, str) for col in on):
            return list(on)
        if isinstance(on, dict) and on and all(
            isinstance(k, str) and isinstance(v, str) for k, v in on.items()
        ):
            return dict(on)
        raise InvalidJoinError(
            f"Invalid join condition for '{table}': expected a column, a list of "
            f"columns or a mapping of columns",
            details={"table": table},
        )

    def compose(
        self,
        join_type: Union[str, JoinType],
        main_table: str,
        table: str,
        on: Any,
        alias: Optional[str] = None,
    ) -> JoinSpec:
        """Build a join specification.

        Args:
            join_type: INNER, LEFT, RIGHT, FULL (any case) or a join marker
            main_table: Name of the table the chain selects from
            table: Table to join
            on: Column, list of columns (``USING``) or mapping
                ``{"main_col": "joined_col"}`` (``ON``)
            alias: Alias of the joined table

        Raises:
            InvalidJoinError: For an unknown type, an invalid condition or a
                self-join without an alias
        """
        resolved = self.join_type(join_type)
        if not table or not isinstance(table, str):
            raise InvalidJoinError("Join table must be a non-empty string", details={"table": str(table)})
        if table == main_table and not alias:
            raise InvalidJoinError(
                f"Joining '{table}' to itself requires an alias",
                details={"table": table},
            )
        return JoinSpec(
            join_type=resolved,
            table=table,
            on=self._validate_on(table, on),
            alias=alias,
        )
