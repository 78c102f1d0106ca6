"""RootCertificateStack — one ACM certificate shared by every stage.

Covers the root domain, ``*.<domain>`` and ``prod.<domain>``.  Only deployed
when stages import a shared certificate instead of issuing their own.
"""

import logging
from typing import Optional

from aws_cdk import CfnOutput, Environment, Stack
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_route53 as route53
from constructs import Construct

logger = logging.getLogger(__name__)

# CloudFront only accepts certificates issued in us-east-1
CERTIFICATE_REGION = "us-east-1"


class RootCertificateStack(Stack):
    """DNS-validated multi-domain certificate, always in us-east-1."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        root_hosted_zone_id: str,
        root_hosted_zone_name: str,
        env: Optional[Environment] = None,
        **kwargs,
    ) -> None:
        # Keep the caller's account, but never its region
        account = env.account if env is not None else None
        super().__init__(
            scope,
            construct_id,
            env=Environment(account=account, region=CERTIFICATE_REGION),
            **kwargs,
        )

        zone = route53.HostedZone.from_hosted_zone_attributes(
            self,
            "HostedZone",
            hosted_zone_id=root_hosted_zone_id,
            zone_name=root_hosted_zone_name,
        )

        self.certificate = acm.Certificate(
            self,
            "MultiDomainCertificate",
            domain_name=root_hosted_zone_name,
            subject_alternative_names=[
                f"*.{root_hosted_zone_name}",
                f"prod.{root_hosted_zone_name}",
            ],
            validation=acm.CertificateValidation.from_dns(zone),
        )
        logger.warning(
            "Certificate for %s validates in the root zone; the deploy waits until "
            "that zone is authoritative at the registrar",
            root_hosted_zone_name,
        )

        CfnOutput(
            self,
            "CertificateArn",
            value=self.certificate.certificate_arn,
            description="ACM certificate ARN (set as certificate_arn for the stage stacks)",
        )
