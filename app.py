#!/usr/bin/env python3
"""CDK entry point for the multi-account static site infrastructure.

Deploy order:
  1. DnsStack              (DNS account; add NS records at the registrar)
  2. RootCertificateStack  (DNS account, us-east-1; shared certificate only)
  3. <Stage>StaticWebsiteStack   (stage account; S3, CloudFront, sub-zone)
  4. <Stage>GitHubActionsRole    (stage account; GitHub OIDC + deploy role)
"""

import logging
import os
import sys
from typing import Dict, NamedTuple, Optional

import aws_cdk as cdk
from dotenv import load_dotenv

from config import ConfigurationError, InfraConfig, stage_construct_id
from stacks.certificate_stack import CERTIFICATE_REGION, RootCertificateStack
from stacks.cicd_stack import CiCdStack
from stacks.dns_stack import DnsStack
from stacks.static_website_stack import StaticWebsiteStack

logger = logging.getLogger(__name__)


class StageStacks(NamedTuple):
    website: StaticWebsiteStack
    cicd: CiCdStack


class DeploymentStacks(NamedTuple):
    dns: DnsStack
    certificate: Optional[RootCertificateStack]
    stages: Dict[str, StageStacks]


def build_stacks(app: cdk.App, config: InfraConfig) -> DeploymentStacks:
    """Declare every stack for ``config`` on ``app``."""
    dns_env = cdk.Environment(account=config.dns_account, region=config.region)

    # ── Stack 1: Root zone + delegation roles ───────────────────────
    dns_stack = DnsStack(
        app,
        "DnsStack",
        domain_name=config.domain_name,
        trusted_accounts=config.stage_accounts,
        env=dns_env,
    )

    # ── Stack 2: Shared certificate (optional) ──────────────────────
    certificate_stack = None
    if config.certificate_strategy == "shared":
        certificate_stack = RootCertificateStack(
            app,
            "RootCertificateStack",
            root_hosted_zone_id=dns_stack.hosted_zone.hosted_zone_id,
            root_hosted_zone_name=config.domain_name,
            env=dns_env,
            cross_region_references=config.region != CERTIFICATE_REGION,
        )
        certificate_stack.add_dependency(dns_stack)

    # ── Stacks 3 + 4: per stage ─────────────────────────────────────
    stages = {}
    for stage_name in config.stages:
        account = config.stage_accounts[stage_name]
        stage_id = stage_construct_id(stage_name)
        stage_env = cdk.Environment(account=account, region=config.region)
        logger.info("Declaring %s stage in account %s (%s)", stage_name, account, config.region)

        website = StaticWebsiteStack(
            app,
            f"{stage_id}StaticWebsiteStack",
            stage_name=stage_name,
            domain_name=config.stage_domain(stage_name),
            root_hosted_zone_name=config.domain_name,
            dns_account_id=config.dns_account,
            certificate_arn=config.certificate_arn if config.certificate_strategy == "shared" else None,
            site_assets_path=config.site_assets_path,
            env=stage_env,
        )

        cicd = CiCdStack(
            app,
            f"{stage_id}GitHubActionsRole",
            repo_owner=config.repo_owner,
            repo_name=config.repo_name,
            dns_account_id=config.dns_account,
            stage_name=stage_name,
            trusted_branch=config.trusted_branch,
            env=stage_env,
        )
        stages[stage_name] = StageStacks(website=website, cicd=cicd)

    return DeploymentStacks(dns=dns_stack, certificate=certificate_stack, stages=stages)


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )

    app = cdk.App()
    try:
        config = InfraConfig.from_context(app.node)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    build_stacks(app, config)
    app.synth()


if __name__ == "__main__":
    main()
