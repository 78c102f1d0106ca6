"""
Unit tests for the top-level composition
Tests that every configured stage gets its stacks in the right accounts
"""

import json

import aws_cdk as core
import aws_cdk.assertions as assertions
import pytest

import app as entry_point
from app import build_stacks
from config import MAX_STAGE_NAME_LENGTH, ConfigurationError, InfraConfig

SHARED_CERTIFICATE_ARN = "arn:aws:acm:us-east-1:111111111111:certificate/0000-shared"
RealApp = core.App


def _load(context):
    app = core.App(context=context)
    return app, InfraConfig.from_context(app.node)


def _templates(app):
    return {
        stack.stack_name: json.dumps(assertions.Template.from_stack(stack).to_json(), sort_keys=True)
        for stack in app.node.children
        if isinstance(stack, core.Stack)
    }


class TestBuildStacks:
    """Test class for the main application"""

    @pytest.fixture
    def app_and_config(self, context):
        """Create CDK app and validated config"""
        return _load(context)

    @pytest.fixture
    def stacks(self, app_and_config):
        """Declare every stack"""
        app, config = app_and_config
        return build_stacks(app, config)

    def test_dns_stack_in_dns_account(self, stacks):
        """The root zone lives in the DNS account"""
        assert stacks.dns.account == "111111111111"
        assert stacks.dns.region == "us-east-1"
        assert stacks.dns.node.id == "DnsStack"

    def test_one_website_and_role_per_stage(self, app_and_config, stacks):
        """Every stage gets one website and one CI role stack in its account"""
        app, config = app_and_config
        assert list(stacks.stages) == ["gamma", "prod"]
        for stage_name, account in config.stage_accounts.items():
            stage = stacks.stages[stage_name]
            assert stage.website.account == account
            assert stage.cicd.account == account
            assert stage.website.stage_name == stage_name

        stack_ids = sorted(c.node.id for c in app.node.children if isinstance(c, core.Stack))
        assert stack_ids == [
            "DnsStack",
            "GammaGitHubActionsRole",
            "GammaStaticWebsiteStack",
            "ProdGitHubActionsRole",
            "ProdStaticWebsiteStack",
        ]

    def test_no_root_certificate_by_default(self, stacks):
        """Stages issue their own certificates unless configured otherwise"""
        assert stacks.certificate is None

    def test_only_prod_serves_root_domain(self, stacks):
        """Root and www belong to prod alone"""
        for stage_name, stage in stacks.stages.items():
            names = stage.website.domain_names
            if stage_name == "prod":
                assert {"example.com", "www.example.com"} <= set(names)
            else:
                assert "example.com" not in names
                assert "www.example.com" not in names

    def test_delegation_roles_match_stages(self, stacks):
        """The DNS stack trusts exactly the configured stages"""
        assert set(stacks.dns.delegation_roles) == set(stacks.stages)

    def test_ci_roles_assume_own_delegation_role(self, stacks):
        """Each stage's CI role may only assume its own delegation role"""
        for stage_name, stage in stacks.stages.items():
            policies = json.dumps(
                assertions.Template.from_stack(stage.cicd).find_resources("AWS::IAM::Policy")
            )
            assert f"CrossAccountDnsManagementRole-{stage_name}" in policies
            for other in stacks.stages:
                if other != stage_name:
                    assert f"CrossAccountDnsManagementRole-{other}" not in policies

    def test_deterministic(self, context):
        """Identical configuration yields identical templates"""
        first_app, first_config = _load(context)
        build_stacks(first_app, first_config)
        second_app, second_config = _load(dict(context))
        build_stacks(second_app, second_config)

        assert _templates(first_app) == _templates(second_app)

    def test_custom_stages(self, context):
        """Stages are driven by configuration"""
        context.update(stages="beta,prod", beta_account="444444444444")
        app, config = _load(context)
        stacks = build_stacks(app, config)
        assert stacks.stages["beta"].website.account == "444444444444"
        assert stacks.stages["beta"].cicd.node.id == "BetaGitHubActionsRole"

    def test_trusted_branch_reaches_ci_roles(self, context):
        """A pinned branch applies to every stage"""
        context["trusted_branch"] = "main"
        app, config = _load(context)
        stacks = build_stacks(app, config)
        for stage in stacks.stages.values():
            roles = json.dumps(assertions.Template.from_stack(stage.cicd).find_resources("AWS::IAM::Role"))
            assert "repo:acme/website:ref:refs/heads/main" in roles

    def test_missing_configuration_declares_nothing(self, context):
        """Configuration errors surface before any stack exists"""
        del context["domain_name"]
        app = core.App(context=context)
        with pytest.raises(ConfigurationError, match="domain_name"):
            build_stacks(app, InfraConfig.from_context(app.node))
        assert not [c for c in app.node.children if isinstance(c, core.Stack)]

    def test_longest_stage_name_fits_resource_names(self, context):
        """Role and bucket names derived from a maximal stage name are valid"""
        stage_name = "s" * MAX_STAGE_NAME_LENGTH
        context.update(stages=[stage_name])
        context[f"{stage_name}_account"] = "444444444444"
        app, config = _load(context)
        stacks = build_stacks(app, config)

        dns = assertions.Template.from_stack(stacks.dns)
        (role,) = dns.find_resources("AWS::IAM::Role").values()
        assert len(role["Properties"]["RoleName"]) <= 64
        website = assertions.Template.from_stack(stacks.stages[stage_name].website)
        (bucket,) = website.find_resources("AWS::S3::Bucket").values()
        assert len(bucket["Properties"]["BucketName"]) <= 63

class TestSharedCertificateDeployment:
    """Test class for the shared certificate design"""

    @pytest.fixture
    def stacks(self, context):
        """Declare stacks outside us-east-1 with a shared certificate"""
        context.update(
            region="eu-west-1",
            certificate_strategy="shared",
            certificate_arn=SHARED_CERTIFICATE_ARN,
        )
        app, config = _load(context)
        return build_stacks(app, config)

    def test_root_certificate_always_us_east_1(self, stacks):
        """The certificate ignores the deployment region"""
        assert stacks.dns.region == "eu-west-1"
        assert stacks.certificate.region == "us-east-1"
        assert stacks.certificate.account == "111111111111"

    def test_stages_import_shared_certificate(self, stacks):
        """No stage requests its own certificate"""
        for stage in stacks.stages.values():
            template = assertions.Template.from_stack(stage.website)
            template.resource_count_is("AWS::CertificateManager::Certificate", 0)
            assert SHARED_CERTIFICATE_ARN in json.dumps(template.to_json())


class TestMain:
    """Test class for the CLI entry point"""

    @pytest.fixture
    def created_apps(self, monkeypatch):
        """Route main() to apps built from a test context"""
        apps = []

        def install(context):
            def make_app():
                app = RealApp(context=context)
                apps.append(app)
                return app

            monkeypatch.setattr(entry_point.cdk, "App", make_app)

        monkeypatch.setattr(entry_point, "load_dotenv", lambda: None)
        return apps, install

    def test_configuration_error_exits_before_any_stack(self, context, created_apps, caplog):
        """A missing value is logged by name and the process exits with status 1"""
        apps, install = created_apps
        del context["domain_name"]
        install(context)

        with caplog.at_level("ERROR", logger="app"):
            with pytest.raises(SystemExit) as excinfo:
                entry_point.main()

        assert excinfo.value.code == 1
        assert "Missing required configuration: domain_name." in caplog.text
        (app,) = apps
        assert not [c for c in app.node.children if isinstance(c, core.Stack)]

    def test_valid_configuration_synthesizes(self, context, created_apps):
        """A complete configuration declares and synthesizes every stack"""
        apps, install = created_apps
        install(context)

        entry_point.main()

        (app,) = apps
        stack_ids = {c.node.id for c in app.node.children if isinstance(c, core.Stack)}
        assert "DnsStack" in stack_ids
        assert "ProdStaticWebsiteStack" in stack_ids
