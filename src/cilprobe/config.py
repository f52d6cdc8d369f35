"""
Runtime configuration for a probe run.

Precedence: command-line flag > environment variable > built-in default.
"""

import os
from dataclasses import dataclass

__all__ = ["ProbeConfig", "DEFAULT_TYPE", "DEFAULT_INT_MEMBER", "DEFAULT_STRING_MEMBER"]

DEFAULT_TYPE          = "Rust.Protocol"
DEFAULT_INT_MEMBER    = "network"
DEFAULT_STRING_MEMBER = "printable"

_ENV_TYPE          = "CILPROBE_TYPE"
_ENV_INT_MEMBER    = "CILPROBE_INT_MEMBER"
_ENV_STRING_MEMBER = "CILPROBE_STRING_MEMBER"


@dataclass
class ProbeConfig:
    type_name:     str  = DEFAULT_TYPE
    int_member:    str  = DEFAULT_INT_MEMBER
    string_member: str  = DEFAULT_STRING_MEMBER
    indent:        int | None = 2      # None = compact JSON
    explain:       bool = False        # include resolution sources in the report

    @classmethod
    def from_env(cls, environ=None) -> "ProbeConfig":
        """Defaults overridden by CILPROBE_* environment variables (empty = unset)."""
        env = os.environ if environ is None else environ
        return cls(
            type_name=env.get(_ENV_TYPE) or DEFAULT_TYPE,
            int_member=env.get(_ENV_INT_MEMBER) or DEFAULT_INT_MEMBER,
            string_member=env.get(_ENV_STRING_MEMBER) or DEFAULT_STRING_MEMBER,
        )
