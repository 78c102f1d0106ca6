"""Deployment configuration for the static site infrastructure.

Every value is read from CDK context (``cdk.json`` or ``--context key=value``)
and falls back to an environment variable, so CI can inject account ids from
secrets.  The resulting ``InfraConfig`` is validated on construction; nothing
downstream reads the environment.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from constructs import Node

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
DEFAULT_STAGES = ("gamma", "prod")
PROD_STAGE = "prod"

CERTIFICATE_STRATEGIES = ("stage", "shared")

_ACCOUNT_ID = re.compile(r"^\d{12}$")
# Stage names prefix IAM role and S3 bucket names, which cap the length
MAX_STAGE_NAME_LENGTH = 30
_STAGE_NAME = re.compile(
    r"^[a-z](?:[a-z0-9-]{0,%d}[a-z0-9])?$" % (MAX_STAGE_NAME_LENGTH - 2)
)


class ConfigurationError(ValueError):
    """A required configuration value is missing or invalid."""


def stage_construct_id(stage: str) -> str:
    """CamelCase prefix for a stage's stack ids, e.g. ``pre-prod`` -> ``PreProd``."""
    return stage.title().replace("-", "")


def _env_var(key: str) -> str:
    return {
        "dns_account": "DNS_ACCOUNT_ID",
        "domain_name": "DOMAIN_NAME",
        "repo_owner": "GITHUB_REPOSITORY_OWNER",
        "repo_name": "REPO_NAME",
        "region": "CDK_DEPLOY_REGION",
    }.get(key) or (
        key[: -len("_account")].replace("-", "_").upper() + "_ACCOUNT_ID"
        if key.endswith("_account")
        else key.upper()
    )


def _missing(key: str) -> ConfigurationError:
    return ConfigurationError(
        f"Missing required configuration: {key}. "
        f"Set via --context {key}=value or environment variable {_env_var(key)}"
    )


def _lookup(node: Node, key: str) -> Optional[str]:
    value = node.try_get_context(key)
    if value is None or value == "":
        value = os.environ.get(_env_var(key))
    if value is None or value == "":
        return None
    return str(value).strip()


@dataclass(frozen=True)
class InfraConfig:
    """Validated configuration for one deployment of every stage."""

    dns_account: Optional[str]
    stage_accounts: Mapping[str, Optional[str]]
    domain_name: Optional[str]
    repo_owner: Optional[str]
    repo_name: Optional[str]
    region: str = DEFAULT_REGION
    trusted_branch: Optional[str] = None
    certificate_strategy: str = "stage"
    certificate_arn: Optional[str] = None
    site_assets_path: Optional[str] = None

    def __post_init__(self) -> None:
        self.validate()

    # ── Construction ────────────────────────────────────────────────
    @classmethod
    def from_context(cls, node: Node) -> "InfraConfig":
        """Build the config from ``node`` context, then the environment."""
        raw_stages = node.try_get_context("stages") or os.environ.get("STAGES")
        if raw_stages is None or raw_stages == "":
            stages = list(DEFAULT_STAGES)
        elif isinstance(raw_stages, str):
            stages = [s.strip() for s in raw_stages.split(",") if s.strip()]
        else:
            stages = [str(s).strip() for s in raw_stages]

        duplicates = sorted({s for s in stages if stages.count(s) > 1})
        if duplicates:
            raise ConfigurationError(
                f"Duplicate stage names in configuration: {', '.join(duplicates)}"
            )

        config = cls(
            dns_account=_lookup(node, "dns_account"),
            stage_accounts={s: _lookup(node, f"{s}_account") for s in stages},
            domain_name=_lookup(node, "domain_name"),
            repo_owner=_lookup(node, "repo_owner"),
            repo_name=_lookup(node, "repo_name"),
            region=_lookup(node, "region") or DEFAULT_REGION,
            trusted_branch=_lookup(node, "trusted_branch"),
            certificate_strategy=_lookup(node, "certificate_strategy") or "stage",
            certificate_arn=_lookup(node, "certificate_arn"),
            site_assets_path=_lookup(node, "site_assets_path"),
        )
        logger.debug("Loaded configuration for stages %s", ", ".join(config.stages))
        return config

    # ── Validation ──────────────────────────────────────────────────
    def validate(self) -> None:
        """Raise ``ConfigurationError`` for the first problem found."""
        if not self.dns_account:
            raise _missing("dns_account")
        if not self.stage_accounts:
            raise ConfigurationError("At least one deployment stage is required")
        for stage, account in self.stage_accounts.items():
            if not _STAGE_NAME.match(stage):
                raise ConfigurationError(
                    f"Invalid stage name {stage!r}: must be a lowercase DNS label of at most "
                    f"{MAX_STAGE_NAME_LENGTH} characters"
                )
            if not account:
                raise _missing(f"{stage}_account")
        stage_ids = {}
        for stage in self.stage_accounts:
            other = stage_ids.setdefault(stage_construct_id(stage), stage)
            if other != stage:
                raise ConfigurationError(
                    f"Stage names {other!r} and {stage!r} both map to stack id prefix "
                    f"{stage_construct_id(stage)!r}"
                )
        for key in ("domain_name", "repo_owner", "repo_name"):
            if not getattr(self, key):
                raise _missing(key)

        for key, account in [("dns_account", self.dns_account)] + [
            (f"{stage}_account", account)
            for stage, account in self.stage_accounts.items()
        ]:
            if not _ACCOUNT_ID.match(account):
                raise ConfigurationError(
                    f"Invalid configuration: {key}={account!r} is not a 12-digit AWS account id"
                )

        if self.certificate_strategy not in CERTIFICATE_STRATEGIES:
            raise ConfigurationError(
                f"Invalid configuration: certificate_strategy={self.certificate_strategy!r}, "
                f"expected one of {', '.join(CERTIFICATE_STRATEGIES)}"
            )
        if self.certificate_strategy == "shared" and not self.certificate_arn:
            raise _missing("certificate_arn")
        # CloudFront only accepts ACM certificates from us-east-1
        if self.certificate_strategy == "stage" and self.region != DEFAULT_REGION:
            raise ConfigurationError(
                f"Invalid configuration: region={self.region!r}. Stages issue their own "
                f"CloudFront certificates, which must live in {DEFAULT_REGION}"
            )

        # Each stage account holds one GitHub OIDC provider and one deploy role
        owners = {}
        for stage, account in self.stage_accounts.items():
            other = owners.setdefault(account, stage)
            if other != stage:
                raise ConfigurationError(
                    f"Invalid configuration: stages {other!r} and {stage!r} share account "
                    f"{account}; every stage needs its own account"
                )

    # ── Derived values ──────────────────────────────────────────────
    @property
    def stages(self) -> list:
        return list(self.stage_accounts)

    def stage_domain(self, stage: str) -> str:
        return f"{stage}.{self.domain_name}"

    @staticmethod
    def is_prod(stage: str) -> bool:
        return stage == PROD_STAGE
