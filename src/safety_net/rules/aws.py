"""
AWS CLI rule module.

Blocks the handful of aws subcommands that print secrets or mint
credentials. Everything else, including every read-only describe/list/get,
is allowed.
"""

from __future__ import annotations

from types import MappingProxyType

from safety_net.core.decision import RuleMatch
from safety_net.rules import RuleContext
from safety_net.rules.cloud import CloudRule, lookup

GLOBAL_FLAGS_WITH_ARG = frozenset({
    "--profile", "--region", "--output", "--endpoint-url", "--query",
    "--ca-bundle", "--color", "--cli-read-timeout", "--cli-connect-timeout",
})

_SECRET = CloudRule("aws.secretsmanager.get", "reading secret values from AWS Secrets Manager is blocked")
_SSM = CloudRule(
    "aws.ssm.decrypt",
    "reading decrypted SSM parameters is blocked",
    requires_flag=("--with-decryption",),
)
_KMS = CloudRule("aws.kms.decrypt", "decrypting data with AWS KMS is blocked")
_IAM_KEYS = CloudRule("aws.iam.keys", "listing or creating IAM access keys is blocked")
_STS = CloudRule("aws.sts.credentials", "issuing temporary AWS credentials is blocked")
_EXPORT = CloudRule("aws.configure.export", "printing configured AWS credentials is blocked")
_ECR = CloudRule("aws.ecr.password", "printing an ECR registry password is blocked")
_SSO = CloudRule("aws.sso.credentials", "fetching AWS SSO role credentials is blocked")

TABLE = MappingProxyType({
    ("secretsmanager", "get-secret-value"): _SECRET,
    ("secretsmanager", "batch-get-secret-value"): _SECRET,
    ("ssm", "get-parameter"): _SSM,
    ("ssm", "get-parameters"): _SSM,
    ("ssm", "get-parameters-by-path"): _SSM,
    ("kms", "decrypt"): _KMS,
    ("iam", "list-access-keys"): _IAM_KEYS,
    ("iam", "get-access-key-last-used"): _IAM_KEYS,
    ("iam", "create-access-key"): _IAM_KEYS,
    ("sts", "get-session-token"): _STS,
    ("sts", "assume-role"): _STS,
    ("sts", "get-federation-token"): _STS,
    ("configure", "export-credentials"): _EXPORT,
    ("configure", "get", "aws_secret_access_key"): _EXPORT,
    ("configure", "get", "aws_session_token"): _EXPORT,
    ("ecr", "get-login-password"): _ECR,
    ("ecr", "get-authorization-token"): _ECR,
    ("sso", "get-role-credentials"): _SSO,
})


def check(ctx: RuleContext) -> RuleMatch:
    if ctx.command != "aws":
        return None
    return lookup("aws", ctx.args, TABLE, GLOBAL_FLAGS_WITH_ARG)
