"""TOGGLES FILE PURPOSE
Purpose: Flag entity and its wire/record encoding.
Hot path: yes (every read/write passes flags through here).
Feature flags: none.
Failure mode: malformed input => pydantic ValidationError (callers wrap it).
"""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

GLOBAL_SERVICE = ""
RECORD_FIELDS = ("name", "serviceName", "rawValue", "value")


class Flag(BaseModel):
    """A named boolean toggle, optionally scoped to one service.

    Instances are frozen: stores hand out the same immutable objects they hold,
    so a caller can never mutate store state through a read result.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str
    service_name: str = Field(default=GLOBAL_SERVICE, alias="serviceName")
    raw_value: str = Field(default="", alias="rawValue")
    value: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.service_name)

    @property
    def is_global(self) -> bool:
        return self.service_name == GLOBAL_SERVICE

    def visible_to(self, service_name: str | None) -> bool:
        if not service_name:
            return True
        return self.is_global or self.service_name == service_name

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Flag":
        # stored records must be complete and exactly typed; defaults are for wire input only
        missing = [k for k in RECORD_FIELDS if k not in record]
        if missing:
            raise ValueError(f"flag record missing fields: {', '.join(missing)}")
        return cls.model_validate(record, strict=True)


def flags_to_records(flags: Iterable[Flag]) -> list[dict[str, Any]]:
    return [f.to_record() for f in flags]
