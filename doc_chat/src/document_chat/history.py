from enum import Enum
from typing import Any, Sequence


def _field(message: Any, name: str) -> Any:
    if isinstance(message, dict):
        return message[name]
    return getattr(message, name)


def format_history(messages: Sequence[Any], limit: int) -> str:
    """
    Render the last `limit` messages as "<role>: <content>" lines, oldest first.

    Messages may be ORM rows or dicts with `role` and `content`. An enum role
    is rendered by its value ("user", "assistant"). limit <= 0 gives "".
    """
    if limit <= 0 or not messages:
        return ""

    lines = []
    for message in list(messages)[-limit:]:
        role = _field(message, "role")
        if isinstance(role, Enum):
            role = role.value
        lines.append(f"{role}: {_field(message, 'content')}")
    return "\n".join(lines)
