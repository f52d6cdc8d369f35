"""ProbeReport — the JSON document printed by the CLI."""

import json
from dataclasses import dataclass, field
from typing import Optional

from cilprobe.engine.resolver import ProbeResult

__all__ = ["ProbeReport"]


@dataclass
class ProbeReport:
    type_name:     str
    int_member:    str
    string_member: str
    int_value:     Optional[int] = None
    string_value:  Optional[str] = None
    sources:       dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_result(cls, type_name: str, int_member: str, string_member: str,
                    result: ProbeResult) -> "ProbeReport":
        return cls(
            type_name=type_name,
            int_member=int_member,
            string_member=string_member,
            int_value=result.int_value.value,
            string_value=result.string_value.value,
            sources={
                int_member:    result.int_value.source.value,
                string_member: result.string_value.source.value,
            },
        )

    @property
    def success(self) -> bool:
        """True if the int resolved or the string resolved to something non-blank."""
        return self.int_value is not None or bool(self.string_value and self.string_value.strip())

    # ── Serialisation ─────────────────────────────────────────────────────

    def to_dict(self, explain: bool = False) -> dict:
        d: dict = {
            "ok":   self.success,
            "type": self.type_name,
            "members": {
                self.int_member:    self.int_value,
                self.string_member: self.string_value,
            },
        }
        if explain:
            d["sources"] = dict(self.sources)
        return d

    def to_json(self, indent: Optional[int] = 2, explain: bool = False) -> str:
        return json.dumps(self.to_dict(explain=explain), ensure_ascii=False, indent=indent)
