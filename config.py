"""
Stack configuration loaded from pulumi.Config().

Provides a typed, immutable view of stack settings. All settings are read from
Pulumi config (e.g. Pulumi.<stack>.yaml or pulumi config set). Every key is
required. Used by __main__.main() to name the website component and pass the
domain, content directory, log retention, price class and retention policy.
"""

from dataclasses import dataclass
from typing import Any, Callable

import pulumi


def _require_bool(config: pulumi.Config, key: str) -> bool:
    raw = config.require(key)
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in ("1", "true", "yes")


def _require_int(config: pulumi.Config, key: str) -> int:
    return int(config.require(key))


def _require_str(config: pulumi.Config, key: str) -> str:
    return config.require(key)


# (key, parser); parser receives (config, key) and returns value.
_CONFIG_SPEC: list[tuple[str, Callable[[pulumi.Config, str], Any]]] = [
    ("domain_name", _require_str),
    ("environment", _require_str),
    ("project_name", _require_str),
    ("site_contents_path", _require_str),
    ("log_expiration_days", _require_int),
    ("price_class", _require_str),
    ("retain_buckets", _require_bool),
]


@dataclass(frozen=True)
class StackConfig:
    """
    Stack configuration from Pulumi config.

    Attributes:
        domain_name: Apex domain of the site; its Route 53 hosted zone must exist (required).
        environment: Environment label used in resource naming (required).
        project_name: Project name used in resource naming (required).
        site_contents_path: Local directory uploaded to the site bucket (required).
        log_expiration_days: Days before access logs expire in the log bucket (required).
        price_class: CloudFront price class, e.g. PriceClass_100 (required).
        retain_buckets: Keep buckets when the stack is destroyed (required).
    """

    domain_name: str
    environment: str
    project_name: str
    site_contents_path: str
    log_expiration_days: int
    price_class: str
    retain_buckets: bool

    @classmethod
    def from_pulumi_config(cls, config: pulumi.Config) -> "StackConfig":
        """
        Build StackConfig from pulumi.Config(). All keys in _CONFIG_SPEC are required.
        """
        kwargs = {key: parser(config, key) for key, parser in _CONFIG_SPEC}
        return cls(**kwargs)
