"""Outreach compliance — rewrites risky sales phrasing and reports what remains."""

import re
from dataclasses import asdict, dataclass

from leadcrm.schemas import MessageVariant


@dataclass
class ComplianceIssue:
    severity: str
    rule: str
    message: str
    match: str

    def to_dict(self) -> dict:
        return asdict(self)


RULES = [
    (
        "high",
        "no-guaranteed-results",
        "Avoid guaranteed claims.",
        re.compile(r"\b(guaranteed|guarantee|sure win|100%\s*(results?|bookings|success)?)", re.IGNORECASE),
    ),
    (
        "medium",
        "no-pressure-sales",
        "Avoid aggressive pressure phrases.",
        re.compile(r"\b(act now|urgent|limited slots?|last chance|don't miss out)\b", re.IGNORECASE),
    ),
    (
        "medium",
        "no-superlative-claims",
        "Avoid unverifiable superlative claims.",
        re.compile(r"\b(best in|number\s*1|top[-\s]?rated|fastest results?)\b", re.IGNORECASE),
    ),
]

REWRITES = [
    (re.compile(r"\b(guarantee|guaranteed)\b", re.IGNORECASE), "help improve"),
    (re.compile(r"\b100%\s*(results?|bookings|success)?", re.IGNORECASE), "strong outcomes"),
    (re.compile(r"\bsure win\b", re.IGNORECASE), "better chance"),
    (
        re.compile(r"\b(act now|urgent|limited slots?|last chance|don't miss out)\b", re.IGNORECASE),
        "if timing fits your team",
    ),
    (re.compile(r"\b(best in|number\s*1|top[-\s]?rated|fastest results?)\b", re.IGNORECASE), "proven approach"),
    (re.compile(r"!{2,}"), "!"),
]


def lint_outreach_text(text: str) -> list[ComplianceIssue]:
    issues = []
    for severity, rule, message, pattern in RULES:
        for match in pattern.finditer(text):
            raw = match.group(0).strip()
            if raw:
                issues.append(ComplianceIssue(severity=severity, rule=rule, message=message, match=raw))
    return issues


def sanitize_outreach_text(text: str) -> str:
    for pattern, replacement in REWRITES:
        text = pattern.sub(replacement, text)
    return re.sub(r"\s{2,}", " ", text).strip()


def sanitize_variants(variants: list[MessageVariant]) -> list[MessageVariant]:
    return [
        MessageVariant(variant_label=v.variant_label, message_text=sanitize_outreach_text(v.message_text))
        for v in variants
    ]


def lint_variants(variants: list[MessageVariant]) -> list[dict]:
    """Flattened issue list tagged with the variant each came from."""
    return [
        {**issue.to_dict(), "variant_label": variant.variant_label}
        for variant in variants
        for issue in lint_outreach_text(variant.message_text)
    ]
