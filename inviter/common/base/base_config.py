# =============================================================================
# File: inviter/common/base/base_config.py
# Description: Shared pydantic-settings base for every Inviter config
# =============================================================================
#
# Each config subclasses BaseConfig, merges BASE_CONFIG_DICT with its own
# env_prefix and is exposed through an @lru_cache(maxsize=1) getter plus a
# reset_* function that tests call between cases:
#
#     class ProjectionConfig(BaseConfig):
#         model_config = SettingsConfigDict(**BASE_CONFIG_DICT, env_prefix="PROJECTION_")
#
# =============================================================================

from typing import Any, Dict

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_CONFIG_DICT: Dict[str, Any] = dict(
    env_file=".env",
    env_file_encoding="utf-8",
    case_sensitive=False,
    extra="ignore",
    env_nested_delimiter="__",
)

_MASK = "**********"


class BaseConfig(BaseSettings):
    """Settings loaded from the environment and ``.env``; SecretStr fields never print."""

    model_config = SettingsConfigDict(**BASE_CONFIG_DICT)

    def __repr__(self) -> str:
        shown = []
        for name in type(self).model_fields:
            value = getattr(self, name)
            shown.append(f"{name}={_MASK!r}" if isinstance(value, SecretStr) else f"{name}={value!r}")
        return f"{type(self).__name__}({', '.join(shown)})"
