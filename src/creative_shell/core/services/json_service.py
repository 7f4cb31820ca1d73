import json
from typing import Any

from pydantic import BaseModel


def _plain(data: Any) -> Any:
    """Pydantic models (and lists of them) become JSON-ready dicts, with field aliases such as 'pass'."""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    if isinstance(data, (list, tuple)):
        return [_plain(item) for item in data]
    return data


def to_json(data: Any, indent: int = 2, ensure_ascii: bool = False) -> str:
    """
    Render audit output (BundleResults, findings, catalogue rows) as a JSON string.

    Args:
        data: A model, a list of models or plain dict/list data.
        indent: Indentation level for pretty-printing (default: 2)
        ensure_ascii: If True, escape non-ASCII chars (default: False)

    Returns:
        str: JSON string
    """
    return json.dumps(_plain(data), ensure_ascii=ensure_ascii, indent=indent)
