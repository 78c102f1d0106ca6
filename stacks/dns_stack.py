"""DnsStack — root Route 53 hosted zone and per-stage delegation roles.

Deployed first, into the DNS account only.  After the initial deploy the
NS records from the ``NameServers`` output must be configured at the domain
registrar so that Route 53 owns DNS for the root domain.

Each stage account gets its own ``CrossAccountDnsManagementRole-<stage>``
which may only touch record names under that stage's subdomain.
"""

import logging
from typing import List, Mapping

from aws_cdk import CfnOutput, Fn, RemovalPolicy, Stack
from aws_cdk import aws_iam as iam
from aws_cdk import aws_route53 as route53
from constructs import Construct

logger = logging.getLogger(__name__)


def delegation_role_name(stage_name: str) -> str:
    """Name of the role a stage assumes to write into the root zone."""
    return f"CrossAccountDnsManagementRole-{stage_name}"


def delegation_record_patterns(stage_name: str, domain_name: str) -> List[str]:
    """Record names a stage may change in the root zone.

    The bare subdomain carries the NS delegation record, the wildcard covers
    anything below it (e.g. certificate validation records).
    """
    subdomain = f"{stage_name}.{domain_name}".lower()
    return [subdomain, f"*.{subdomain}"]


def delegation_role_arn(scope: Construct, dns_account_id: str, stage_name: str) -> str:
    """ARN of a stage's delegation role in the DNS account."""
    return Stack.of(scope).format_arn(
        account=dns_account_id,
        region="",
        service="iam",
        resource="role",
        resource_name=delegation_role_name(stage_name),
    )


class DnsStack(Stack):
    """Create the root hosted zone and cross-account delegation roles."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        domain_name: str,
        trusted_accounts: Mapping[str, str],
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # ── Route 53 Hosted Zone ────────────────────────────────────
        self.hosted_zone = route53.PublicHostedZone(
            self,
            "RootHostedZone",
            zone_name=domain_name,
            comment=f"Root zone for {domain_name}, delegated to stage accounts",
        )
        # Losing the zone would change its name servers at the registrar
        self.hosted_zone.apply_removal_policy(RemovalPolicy.RETAIN_ON_UPDATE_OR_DELETE)

        # ── Delegation roles, one per stage ─────────────────────────
        self.delegation_roles = {}
        for stage_name, account in trusted_accounts.items():
            logger.debug("Granting %s (%s) delegation under %s", stage_name, account, domain_name)
            role = iam.Role(
                self,
                f"CrossAccountDnsManagementRole-{stage_name}",
                role_name=delegation_role_name(stage_name),
                assumed_by=iam.AccountPrincipal(account),
                description=f"Lets the {stage_name} account delegate {stage_name}.{domain_name}",
                inline_policies={
                    "delegation": iam.PolicyDocument(
                        statements=[
                            iam.PolicyStatement(
                                sid="ListZones",
                                actions=["route53:ListHostedZonesByName"],
                                resources=["*"],
                            ),
                            iam.PolicyStatement(
                                sid="ReadRootZone",
                                actions=["route53:GetHostedZone"],
                                resources=[self.hosted_zone.hosted_zone_arn],
                            ),
                            iam.PolicyStatement(
                                sid="ChangeStageRecords",
                                actions=["route53:ChangeResourceRecordSets"],
                                resources=[self.hosted_zone.hosted_zone_arn],
                                conditions={
                                    "ForAllValues:StringLike": {
                                        "route53:ChangeResourceRecordSetsNormalizedRecordNames": (
                                            delegation_record_patterns(stage_name, domain_name)
                                        ),
                                    },
                                },
                            ),
                        ]
                    ),
                },
            )
            self.delegation_roles[stage_name] = role

            CfnOutput(
                self,
                f"CrossAccountRoleArn-{stage_name}",
                value=role.role_arn,
                description=f"ARN of the {stage_name} cross-account DNS management role",
                export_name=f"{self.stack_name}-CrossAccountRoleArn-{stage_name}",
            )

        # ── Outputs ─────────────────────────────────────────────────
        CfnOutput(
            self,
            "HostedZoneId",
            value=self.hosted_zone.hosted_zone_id,
            description="Route 53 hosted zone ID",
            export_name=f"{self.stack_name}-HostedZoneId",
        )
        CfnOutput(
            self,
            "HostedZoneName",
            value=self.hosted_zone.zone_name,
            description="Route 53 hosted zone name",
            export_name=f"{self.stack_name}-HostedZoneName",
        )
        CfnOutput(
            self,
            "NameServers",
            value=Fn.join(", ", self.hosted_zone.hosted_zone_name_servers or []),
            description="Configure these NS records at the domain registrar",
        )
