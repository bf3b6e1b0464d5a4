"""Heroku CLI rule module: blocks commands that print tokens or config vars."""

from __future__ import annotations

from types import MappingProxyType

from safety_net.core.decision import RuleMatch
from safety_net.rules import RuleContext
from safety_net.rules.cloud import CloudRule, lookup

FLAGS_WITH_ARG = frozenset({"-a", "--app", "-r", "--remote", "-t", "--team"})

_CONFIG = CloudRule("heroku.config", "printing Heroku config vars is blocked")
_CREDENTIALS = CloudRule("heroku.credentials", "printing Heroku database credentials is blocked")

TABLE = MappingProxyType({
    ("auth:token",): CloudRule("heroku.auth.token", "printing the Heroku API token is blocked"),
    ("authorizations:create",): CloudRule("heroku.auth.token", "creating a Heroku API token is blocked"),
    ("config",): _CONFIG,
    ("config:get",): _CONFIG,
    ("pg:credentials",): _CREDENTIALS,
    ("pg:credentials:url",): _CREDENTIALS,
    ("redis:credentials",): _CREDENTIALS,
})


def check(ctx: RuleContext) -> RuleMatch:
    if ctx.command != "heroku":
        return None
    return lookup("heroku", ctx.args, TABLE, FLAGS_WITH_ARG)
