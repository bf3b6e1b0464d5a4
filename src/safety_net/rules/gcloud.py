"""
Google Cloud CLI rule module.

Blocks gcloud commands that print access tokens or secret payloads.
Release tracks (alpha, beta, preview) are ignored when matching.
"""

from __future__ import annotations

from types import MappingProxyType

from safety_net.core.decision import RuleMatch
from safety_net.rules import RuleContext
from safety_net.rules.cloud import CloudRule, lookup

GLOBAL_FLAGS_WITH_ARG = frozenset({
    "--project", "--account", "--configuration", "--format", "--region",
    "--zone", "--verbosity", "--impersonate-service-account",
    "--billing-project", "--flags-file",
})

RELEASE_TRACKS = frozenset({"alpha", "beta", "preview"})

_TOKEN = CloudRule("gcloud.auth.token", "printing Google Cloud access tokens is blocked")

TABLE = MappingProxyType({
    ("auth", "print-access-token"): _TOKEN,
    ("auth", "print-identity-token"): _TOKEN,
    ("auth", "application-default", "print-access-token"): _TOKEN,
    ("config", "config-helper"): CloudRule(
        "gcloud.config.helper", "gcloud config config-helper prints an access token"
    ),
    ("secrets", "versions", "access"): CloudRule(
        "gcloud.secrets.access", "reading secret payloads from Secret Manager is blocked"
    ),
    ("sql", "users", "set-password"): CloudRule(
        "gcloud.sql.password",
        "setting a Cloud SQL password on the command line is blocked",
        requires_flag=("--password",),
    ),
})


def check(ctx: RuleContext) -> RuleMatch:
    if ctx.command != "gcloud":
        return None
    return lookup("gcloud", ctx.args, TABLE, GLOBAL_FLAGS_WITH_ARG, skip_leading=RELEASE_TRACKS)
