"""
Admission control for proxied requests.

Rules are evaluated in order and the first failing rule denies the request.
Each rule carries the reason recorded in server logs and metrics; the reason
is never sent to the client.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from rewrite_proxy.models import ProxyVerdict, RequestContext, RouteConfig

Predicate = Callable[[RequestContext, RouteConfig], bool]


@dataclass(frozen=True)
class AdmissionRule:
    reason: str
    passes: Predicate


def _matches(pattern: re.Pattern, subject: str) -> bool:
    return pattern.search(subject) is not None


def _allow_rule(
    reason: str,
    pattern_of: Callable[[RouteConfig], Optional[re.Pattern]],
    subject_of: Callable[[RequestContext], str],
) -> AdmissionRule:
    def passes(context: RequestContext, config: RouteConfig) -> bool:
        pattern = pattern_of(config)
        return pattern is None or _matches(pattern, subject_of(context))

    return AdmissionRule(reason, passes)


def _deny_rule(
    reason: str,
    pattern_of: Callable[[RouteConfig], Optional[re.Pattern]],
    subject_of: Callable[[RequestContext], str],
) -> AdmissionRule:
    def passes(context: RequestContext, config: RouteConfig) -> bool:
        pattern = pattern_of(config)
        return pattern is None or not _matches(pattern, subject_of(context))

    return AdmissionRule(reason, passes)


def _user_agent(context: RequestContext) -> str:
    return context.user_agent.lower()


ADMISSION_RULES: Tuple[AdmissionRule, ...] = (
    AdmissionRule("misconfigured_route", lambda _ctx, cfg: bool(cfg.proxy_host)),
    _allow_rule("path_not_allowed", lambda c: c.pathname_filter, lambda r: r.path),
    _allow_rule("user_agent_not_allowed", lambda c: c.user_agent_allow, _user_agent),
    _deny_rule("user_agent_denied", lambda c: c.user_agent_deny, _user_agent),
    _allow_rule("ip_not_allowed", lambda c: c.ip_allow, lambda r: r.client_ip),
    _deny_rule("ip_denied", lambda c: c.ip_deny, lambda r: r.client_ip),
    _allow_rule("region_not_allowed", lambda c: c.region_allow, lambda r: r.region),
    _deny_rule("region_denied", lambda c: c.region_deny, lambda r: r.region),
)


def evaluate(
    context: RequestContext,
    config: RouteConfig,
    rules: Tuple[AdmissionRule, ...] = ADMISSION_RULES,
) -> ProxyVerdict:
    """Run the admission rules against a request, stopping at the first failure."""
    for rule in rules:
        if not rule.passes(context, config):
            return ProxyVerdict.deny(rule.reason)
    return ProxyVerdict.allow()
