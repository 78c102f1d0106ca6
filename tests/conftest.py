import aws_cdk as core
import pytest

from config import InfraConfig

DNS_ACCOUNT = "111111111111"
GAMMA_ACCOUNT = "222222222222"
PROD_ACCOUNT = "333333333333"
DOMAIN = "example.com"

ENV_VARS = (
    "DNS_ACCOUNT_ID",
    "GAMMA_ACCOUNT_ID",
    "PROD_ACCOUNT_ID",
    "NONPROD_ACCOUNT_ID",
    "BETA_ACCOUNT_ID",
    "DOMAIN_NAME",
    "GITHUB_REPOSITORY_OWNER",
    "REPO_NAME",
    "CDK_DEPLOY_REGION",
    "STAGES",
    "TRUSTED_BRANCH",
    "CERTIFICATE_STRATEGY",
    "CERTIFICATE_ARN",
    "SITE_ASSETS_PATH",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the developer's shell and .env out of configuration tests"""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def context():
    """Complete CDK context for a gamma + prod deployment"""
    return {
        "dns_account": DNS_ACCOUNT,
        "gamma_account": GAMMA_ACCOUNT,
        "prod_account": PROD_ACCOUNT,
        "domain_name": DOMAIN,
        "repo_owner": "acme",
        "repo_name": "website",
    }


@pytest.fixture
def config(context):
    """Validated configuration built the way the CLI builds it"""
    return InfraConfig.from_context(core.App(context=context).node)
