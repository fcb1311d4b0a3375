from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_NAMESPACE = "proxysynth.generated"
DEFAULT_CLASS_PREFIX = "_Proxy"


class EngineSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    namespace: str = DEFAULT_NAMESPACE
    class_prefix: str = DEFAULT_CLASS_PREFIX
    conflict_policy: Literal["eager", "deferred"] = "eager"
    check_returns: bool = True
    publish_to_modules: bool = True

    @field_validator("namespace")
    @classmethod
    def _dotted_identifier(cls, value: str) -> str:
        parts = value.split(".")
        if not value or not all(part.isidentifier() for part in parts):
            raise ValueError(f"namespace must be a dotted module path, got {value!r}")
        return value

    @field_validator("class_prefix")
    @classmethod
    def _identifier(cls, value: str) -> str:
        if not value.isidentifier():
            raise ValueError(f"class_prefix must be an identifier, got {value!r}")
        return value
