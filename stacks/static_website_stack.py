"""StaticWebsiteStack — S3, CloudFront and Route 53 for one stage.

Deployed into each stage account.  It creates:
  - A private S3 bucket for the built site
  - A hosted zone for ``<stage>.<domain>``, delegated from the root zone
    in the DNS account through the stage's cross-account role
  - An ACM certificate (issued per stage, or imported from a shared ARN)
  - A CloudFront distribution reading the bucket through Origin Access Control
  - Route 53 alias records pointing the subdomain to CloudFront
  - Optionally, an upload of a pre-built asset directory

The prod stage additionally serves the bare root domain and ``www``.
"""

import logging
import os
from typing import Optional

from aws_cdk import CfnOutput, Duration, RemovalPolicy, Stack
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_cloudfront_origins as origins
from aws_cdk import aws_iam as iam
from aws_cdk import aws_route53 as route53
from aws_cdk import aws_route53_targets as targets
from aws_cdk import aws_s3 as s3
from aws_cdk import aws_s3_deployment as s3deploy
from constructs import Construct

from config import InfraConfig
from stacks.dns_stack import delegation_role_arn

logger = logging.getLogger(__name__)


def site_domain_names(stage_name: str, domain_name: str, root_domain_name: str) -> list:
    """Domain names served by a stage's distribution."""
    if InfraConfig.is_prod(stage_name):
        return [domain_name, root_domain_name, f"www.{root_domain_name}"]
    return [domain_name]


class StaticWebsiteStack(Stack):
    """Static site hosting for a single stage."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        stage_name: str,
        domain_name: str,
        root_hosted_zone_name: str,
        dns_account_id: str,
        certificate_arn: Optional[str] = None,
        site_assets_path: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.stage_name = stage_name
        self.domain_names = site_domain_names(stage_name, domain_name, root_hosted_zone_name)

        # ── S3 Bucket for the site ──────────────────────────────────
        self.bucket = s3.Bucket(
            self,
            "SiteBucket",
            bucket_name=f"{stage_name}-website-{self.account}",
            public_read_access=False,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            removal_policy=RemovalPolicy.DESTROY,
            auto_delete_objects=True,
        )

        # ── Subdomain hosted zone ───────────────────────────────────
        self.subdomain_hosted_zone = route53.PublicHostedZone(
            self,
            "SubdomainHostedZone",
            zone_name=domain_name,
        )

        # ── Delegation into the root zone (DNS account) ─────────────
        delegation_role = iam.Role.from_role_arn(
            self,
            "DelegationRole",
            delegation_role_arn(self, dns_account_id, stage_name),
        )
        self.delegation_record = route53.CrossAccountZoneDelegationRecord(
            self,
            "DelegationRecord",
            delegation_role=delegation_role,
            delegated_zone=self.subdomain_hosted_zone,
            parent_hosted_zone_name=root_hosted_zone_name,
        )

        # ── ACM Certificate ─────────────────────────────────────────
        if certificate_arn:
            self.certificate = acm.Certificate.from_certificate_arn(
                self,
                "ImportedCertificate",
                certificate_arn,
            )
        else:
            self.certificate = self._stage_certificate(domain_name)
            # Validation records only resolve once the subdomain is delegated
            self.certificate.node.add_dependency(self.delegation_record)

        # ── CloudFront Distribution ─────────────────────────────────
        self.distribution = cloudfront.Distribution(
            self,
            "Distribution",
            domain_names=self.domain_names,
            certificate=self.certificate,
            default_root_object="index.html",
            default_behavior=cloudfront.BehaviorOptions(
                origin=origins.S3BucketOrigin.with_origin_access_control(self.bucket),
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
                cache_policy=cloudfront.CachePolicy.CACHING_OPTIMIZED,
            ),
            # SPA fallback: a private bucket answers 403 for missing keys
            error_responses=[
                cloudfront.ErrorResponse(
                    http_status=status,
                    response_page_path="/index.html",
                    response_http_status=200,
                    ttl=Duration.seconds(0),
                )
                for status in (403, 404)
            ],
        )

        # ── Route 53 alias records ──────────────────────────────────
        alias_target = route53.RecordTarget.from_alias(
            targets.CloudFrontTarget(self.distribution),
        )
        route53.ARecord(
            self,
            "AliasRecord",
            zone=self.subdomain_hosted_zone,
            record_name=domain_name,
            target=alias_target,
        )
        route53.AaaaRecord(
            self,
            "AliasRecordAAAA",
            zone=self.subdomain_hosted_zone,
            record_name=domain_name,
            target=alias_target,
        )
        if InfraConfig.is_prod(stage_name):
            logger.warning(
                "Alias records for %s and www.%s live in the root zone and must be "
                "created in the DNS account",
                root_hosted_zone_name,
                root_hosted_zone_name,
            )

        # ── Site content ────────────────────────────────────────────
        if site_assets_path:
            self._deploy_assets(site_assets_path)

        # ── Outputs ─────────────────────────────────────────────────
        CfnOutput(
            self,
            "SubdomainHostedZoneId",
            value=self.subdomain_hosted_zone.hosted_zone_id,
            description="Subdomain hosted zone ID",
        )
        CfnOutput(self, "BucketName", value=self.bucket.bucket_name, description="S3 bucket name")
        CfnOutput(
            self,
            "DistributionId",
            value=self.distribution.distribution_id,
            description="CloudFront distribution ID (needed for cache invalidation in CI/CD)",
        )
        CfnOutput(
            self,
            "DistributionDomainName",
            value=self.distribution.distribution_domain_name,
            description="CloudFront distribution domain name",
        )
        CfnOutput(
            self,
            "WebsiteUrl",
            value=f"https://{domain_name}",
            description="Website URL",
        )

    def _stage_certificate(self, domain_name: str) -> acm.Certificate:
        """Issue a certificate for every name this stage serves.

        Names under the subdomain validate in the stage's own zone.  Any other
        name (the bare root and ``www`` for prod) needs its validation record
        created by hand in the root zone.
        """
        alternative_names = [name for name in self.domain_names if name != domain_name]
        outside_zone = [
            name for name in alternative_names if not name.endswith(f".{domain_name}")
        ]
        if outside_zone:
            logger.warning(
                "Certificate for %s also covers %s; create its DNS validation records "
                "in the root zone manually or the deploy will stall",
                domain_name,
                ", ".join(outside_zone),
            )
            validation = acm.CertificateValidation.from_dns()
        else:
            validation = acm.CertificateValidation.from_dns(self.subdomain_hosted_zone)

        return acm.Certificate(
            self,
            "SubdomainCertificate",
            domain_name=domain_name,
            subject_alternative_names=alternative_names or None,
            validation=validation,
        )

    def _deploy_assets(self, site_assets_path: str) -> None:
        if not os.path.isdir(site_assets_path):
            logger.warning("Site assets %s not found, skipping upload", site_assets_path)
            return
        s3deploy.BucketDeployment(
            self,
            "WebsiteDeployment",
            sources=[s3deploy.Source.asset(site_assets_path)],
            destination_bucket=self.bucket,
            distribution=self.distribution,
            distribution_paths=["/*"],
        )
