"""Keyword and pattern based category detection for specs created without one.

Each category has a set of regex patterns and keywords. A pattern found in
the text scores 3 (plus 2 more when it is also in the title), a keyword found
as a word scores 1 (plus 1 more in the title). The raw score is
pattern_score * 2 + keyword_score, scaled by the category weight / 10.
Specs matching nothing fall back to DEFAULT_CATEGORY.
"""

import re
from dataclasses import dataclass

from spec_mcp.store.models import DEFAULT_CATEGORY

_WORD_SPLIT = re.compile(r"\W+")


@dataclass(frozen=True)
class CategoryRule:
    name: str
    weight: int
    patterns: tuple[re.Pattern, ...]
    keywords: frozenset[str]


def _rule(name: str, weight: int, patterns: list[str], keywords: str) -> CategoryRule:
    return CategoryRule(
        name=name,
        weight=weight,
        patterns=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
        keywords=frozenset(keywords.split()),
    )


RULES = (
    _rule(
        "authentication",
        8,
        [
            r"\bauth",
            r"\b(login|signup|sign[_ -]?in|sign[_ -]?up)",
            r"\b(oauth|sso|saml|jwt|token)",
            r"\b(password|credential|session|cookie)",
            r"\b(user[_ -]?management|account|profile)",
            r"\b(access[_ -]?control|permission)",
        ],
        "authentication authorization login signup oauth sso password credential "
        "token jwt session user account profile access permission role",
    ),
    _rule(
        "payments",
        9,
        [
            r"\b(payment|billing|invoice|subscription)",
            r"\b(stripe|paypal|checkout|transaction)",
            r"\b(credit|debit|bank|financial)",
            r"\b(pricing|revenue|monetization)",
            r"\b(refund|chargeback|receipt)",
        ],
        "payment payments billing invoice invoices subscription stripe paypal "
        "checkout transaction credit card pricing plan revenue refund receipt money",
    ),
    _rule(
        "ui-components",
        7,
        [
            r"\b(component|widget)",
            r"\b(button|form|input|modal|dialog)",
            r"\b(layout|grid|responsive)",
            r"\b(design[_ -]?system|style[_ -]?guide)",
            r"\b(theme|typography|font)",
            r"\b(animation|transition)",
            r"\b(accessibility|a11y|aria)\b",
        ],
        "component widget button form input modal layout design style theme font "
        "animation ui ux interface responsive accessibility",
    ),
    _rule(
        "database",
        8,
        [
            r"\b(database|db|sql|nosql)\b",
            r"\b(schema|migration)",
            r"\b(query|queries|constraint)",
            r"\b(postgres|mysql|mongodb|sqlite)",
            r"\b(orm|prisma|sequelize|sqlalchemy)\b",
            r"\b(backup|restore|replication)",
        ],
        "database schema migration model query sql postgres mysql mongodb sqlite "
        "orm table index constraint relation backup data",
    ),
    _rule(
        "api",
        7,
        [
            r"\b(api|endpoint|rest|restful)\b",
            r"\b(graphql|resolver)",
            r"\b(webhook|callback)",
            r"\b(microservice|service[_ -]?layer)",
            r"\b(https?|request|response)\b",
            r"\b(swagger|openapi)",
        ],
        "api endpoint endpoints rest graphql webhook microservice request response "
        "http swagger openapi client server",
    ),
    _rule(
        "infrastructure",
        6,
        [
            r"\b(deploy|devops)",
            r"\b(docker|kubernetes|container)",
            r"\b(ci/cd|continuous[_ -]?integration)",
            r"\b(cloud|aws|azure|gcp|serverless)",
            r"\b(monitoring|logging|observability)",
            r"\b(load[_ -]?balanc|autoscal)",
        ],
        "deploy deployment docker kubernetes container cloud aws azure monitoring "
        "logging scaling infrastructure devops serverless",
    ),
    _rule(
        "testing",
        5,
        [
            r"\b(unit|integration|e2e|end[_ -]?to[_ -]?end)[_ -]?tests?\b",
            r"\b(testing|tests?)\b",
            r"\b(pytest|jest|cypress|selenium)",
            r"\b(mock|stub|fixture|snapshot)",
            r"\b(coverage|tdd|bdd)\b",
        ],
        "test tests testing unit integration e2e pytest jest cypress mock coverage "
        "tdd bdd fixture snapshot assertion verify",
    ),
    _rule(
        "architecture",
        4,
        [
            r"\b(architecture|system[_ -]?design)",
            r"\b(pattern|structure)",
            r"\b(module|package|namespace)",
            r"\b(framework|library|dependency)",
            r"\b(config|configuration|setting)",
            r"\b(workflow|pipeline)",
        ],
        "architecture system design pattern structure module package framework "
        "library config configuration workflow process organization",
    ),
    _rule(
        "performance",
        6,
        [
            r"\b(performance|optimi[sz]ation|speed)",
            r"\b(cache|caching|redis|memcached)",
            r"\b(lazy[_ -]?loading|preload|prefetch)",
            r"\b(bundle|minification|compression)",
            r"\b(memory|cpu|efficiency)",
            r"\b(benchmark|profiling|metrics)",
        ],
        "performance optimization speed cache caching redis lazy bundle memory cpu "
        "benchmark metrics efficiency fast slow bottleneck",
    ),
    _rule(
        "security",
        9,
        [
            r"\b(security|secure|vulnerab)",
            r"\b(encrypt|decrypt|hash|cipher)",
            r"\b(xss|csrf|sql[_ -]?injection)",
            r"\b(firewall|cors|sanitiz)",
            r"\b(audit|compliance|gdpr|privacy)",
            r"\b(threat|attack|malicious)",
        ],
        "security secure vulnerability encryption hash xss csrf injection cors "
        "audit compliance privacy threat risk attack protection",
    ),
)


def category_scores(title: str, body: str) -> dict[str, float]:
    """Score every category against a spec; categories scoring 0 are left out."""
    title_lower = title.lower()
    text = f"{title_lower} {body.lower()}"
    words = {word for word in _WORD_SPLIT.split(text) if len(word) > 1}

    scores: dict[str, float] = {}
    for rule in RULES:
        pattern_score = 0
        for pattern in rule.patterns:
            if pattern.search(text):
                pattern_score += 3
                if pattern.search(title_lower):
                    pattern_score += 2

        keyword_score = 0
        for keyword in rule.keywords:
            if keyword in words:
                keyword_score += 1
                if keyword in title_lower:
                    keyword_score += 1

        score = (pattern_score * 2 + keyword_score) * rule.weight / 10
        if score > 0:
            scores[rule.name] = score
    return scores


def detect_category(title: str, body: str) -> str:
    """Pick the best scoring category; ties go to the heavier, then earlier, rule."""
    scores = category_scores(title, body)
    if not scores:
        return DEFAULT_CATEGORY
    ranked = sorted(
        (rule for rule in RULES if rule.name in scores),
        key=lambda rule: (-scores[rule.name], -rule.weight),
    )
    return ranked[0].name
