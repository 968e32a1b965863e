# ABOUTME: Pydantic-backed JSON column type for the job and channel tables
# ABOUTME: Stores typed payloads and results as JSON text with validation on every load

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter
from sqlalchemy import Text, TypeDecorator
from sqlalchemy.engine import Dialect


class PydanticJson(TypeDecorator[Any]):
    """Column holding any pydantic-validatable type serialized as JSON text.

    Serialization goes through a TypeAdapter in JSON mode on both sides so
    discriminated unions, Decimals and base64 bytes survive the round trip.
    """

    impl = Text()
    cache_ok = True

    def __init__(self, pydantic_type: Any) -> None:
        super().__init__()
        self.type_adapter = TypeAdapter(pydantic_type)

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        if value is None:
            return None
        return self.type_adapter.dump_json(value).decode("utf-8")

    def process_result_value(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        return self.type_adapter.validate_json(value)
