"""CiCdStack — GitHub OIDC provider and deploy role for one stage account.

The role is assumable only by GitHub Actions workflows of the configured
repository.  Without a trusted branch any ref of the repository may assume
it; with one, only pushes to that branch may.

No static AWS access keys are stored anywhere.
"""

import logging
from typing import Optional, Sequence

from aws_cdk import CfnOutput, Duration, Stack
from aws_cdk import aws_iam as iam
from constructs import Construct

from stacks.dns_stack import delegation_role_arn

logger = logging.getLogger(__name__)

GITHUB_OIDC_URL = "https://token.actions.githubusercontent.com"
GITHUB_OIDC_AUDIENCE = "sts.amazonaws.com"


def github_subject_claim(repo_owner: str, repo_name: str, trusted_branch: Optional[str] = None) -> str:
    """``sub`` claim pattern GitHub tokens must match to assume the role."""
    if trusted_branch:
        return f"repo:{repo_owner}/{repo_name}:ref:refs/heads/{trusted_branch}"
    return f"repo:{repo_owner}/{repo_name}:*"


class CiCdStack(Stack):
    """GitHub OIDC identity provider and the stage's deploy role."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        repo_owner: str,
        repo_name: str,
        dns_account_id: str,
        stage_name: str,
        trusted_branch: Optional[str] = None,
        additional_policies: Sequence[iam.IManagedPolicy] = (),
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # ── GitHub OIDC Provider ────────────────────────────────────
        oidc_provider = iam.OpenIdConnectProvider(
            self,
            "GitHubOidc",
            url=GITHUB_OIDC_URL,
            client_ids=[GITHUB_OIDC_AUDIENCE],
        )

        subject_claim = github_subject_claim(repo_owner, repo_name, trusted_branch)
        if not trusted_branch:
            logger.info(
                "%s deploy role trusts every ref of %s/%s; set trusted_branch to pin it",
                stage_name,
                repo_owner,
                repo_name,
            )

        # ── Deploy Role ─────────────────────────────────────────────
        self.role = iam.Role(
            self,
            "GitHubActionsDeployRole",
            role_name=f"github-actions-{repo_owner}-{repo_name}-role",
            assumed_by=iam.FederatedPrincipal(
                oidc_provider.open_id_connect_provider_arn,
                conditions={
                    "StringEquals": {
                        "token.actions.githubusercontent.com:aud": GITHUB_OIDC_AUDIENCE,
                    },
                    "StringLike": {
                        "token.actions.githubusercontent.com:sub": subject_claim,
                    },
                },
                assume_role_action="sts:AssumeRoleWithWebIdentity",
            ),
            description=f"Role for GitHub Actions to deploy CDK stacks from {repo_owner}/{repo_name}",
            max_session_duration=Duration.hours(1),
        )

        # CDK deploy needs broad permissions for the services it manages
        self.role.add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name("PowerUserAccess")
        )
        # PowerUserAccess excludes IAM, which CDK needs for bootstrapping
        # and for the roles its stacks declare
        self.role.add_to_policy(
            iam.PolicyStatement(
                sid="CdkRoleManagement",
                actions=[
                    "iam:CreateRole",
                    "iam:DeleteRole",
                    "iam:GetRole",
                    "iam:UpdateRole",
                    "iam:PassRole",
                    "iam:AttachRolePolicy",
                    "iam:DetachRolePolicy",
                    "iam:PutRolePolicy",
                    "iam:DeleteRolePolicy",
                    "iam:GetRolePolicy",
                    "iam:TagRole",
                    "iam:UntagRole",
                    "iam:CreatePolicy",
                    "iam:DeletePolicy",
                    "iam:GetPolicy",
                    "iam:GetPolicyVersion",
                    "iam:ListPolicyVersions",
                    "iam:CreatePolicyVersion",
                    "iam:DeletePolicyVersion",
                    "iam:TagPolicy",
                    "iam:UntagPolicy",
                ],
                resources=["*"],
            )
        )

        # ── Assume this stage's DNS delegation role, nothing else ───
        self.role.add_to_policy(
            iam.PolicyStatement(
                sid="AssumeDnsDelegationRole",
                actions=["sts:AssumeRole"],
                resources=[delegation_role_arn(self, dns_account_id, stage_name)],
            )
        )

        for policy in additional_policies:
            self.role.add_managed_policy(policy)

        # ── Outputs ─────────────────────────────────────────────────
        CfnOutput(
            self,
            "RoleArn",
            value=self.role.role_arn,
            description="ARN of the IAM role for GitHub Actions",
            export_name=f"{self.stack_name}-RoleArn",
        )
        CfnOutput(
            self,
            "RoleName",
            value=self.role.role_name,
            description="Name of the IAM role for GitHub Actions",
        )
