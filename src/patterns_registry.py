import re
import math
from collections import Counter
from typing import List, Optional

from data_classes import ScanPattern, SecretMatch

# Minimum Shannon entropy (bits per character) for an unlabeled 40 character token
ENTROPY_THRESHOLD = 3.5

UNLABELED_SECRET_LENGTH = 40

# Substrings that mark a value as an obvious placeholder, checked case-insensitively
PLACEHOLDER_TERMS = [
    "example",
    "sample",
    "fake",
    "test",
    "demo",
    "placeholder",
    "your_",
    "your-",
    "my_",
    "my-",
    "dummy",
    "xxxxxxxx",
]

URL_TERMS = ["github", "http", "www"]

PATH_TOKENS = [
    "src",
    "dist",
    "main",
    "master",
    "blob",
    "tree",
    "commit",
    "docs",
    "readme",
    "contributing",
    "license",
    "config",
    "package",
]

ACCESS_KEY_PREFIXES = [
    "AKIA",
    "ABIA",
    "ACCA",
    "AGPA",
    "AIDA",
    "AIPA",
    "ANPA",
    "ANVA",
    "AROA",
    "ASIA",
]

_PATH_TOKEN_RE = re.compile(r"(?:%s)/" % "|".join(PATH_TOKENS))


def shannon_entropy(data: str) -> float:
    """Shannon entropy of a string in bits per character"""
    if not data:
        return 0.0

    counts = Counter(data)
    length = len(data)
    return -sum((c / length) * math.log2(c / length) for c in counts.values())


def is_placeholder(value: str) -> bool:
    value_lower = value.lower()
    return any(term in value_lower for term in PLACEHOLDER_TERMS)


def has_required_character_types(value: str) -> bool:
    """True when the value mixes uppercase, lowercase and digits"""
    return (
        any(c.isupper() for c in value)
        and any(c.islower() for c in value)
        and any(c.isdigit() for c in value)
    )


def contains_url_or_path(value: str) -> bool:
    value_lower = value.lower()
    if any(term in value_lower for term in URL_TERMS):
        return True
    return _PATH_TOKEN_RE.search(value_lower) is not None


def is_valid_unlabeled_secret(value: str) -> bool:
    """
    Extra checks for 40 character tokens found without a label.

    These have nothing but their shape going for them, so a candidate must be
    exactly 40 characters, mix character classes, not look like a URL or repo
    path and be random enough.
    """
    if len(value) != UNLABELED_SECRET_LENGTH:
        return False
    if not has_required_character_types(value):
        return False
    if contains_url_or_path(value):
        return False
    return shannon_entropy(value) >= ENTROPY_THRESHOLD


class PatternRegistry:
    """
    The fixed set of AWS credential recognizers.

    Every pattern goes through the same match -> extract -> filter steps in detect().
    """

    def __init__(self):
        self.patterns = self._load_default_patterns()

    def _load_default_patterns(self) -> List[ScanPattern]:
        return [
            ScanPattern(
                name="AWS_ACCESS_KEY_ID",
                regex=re.compile(
                    r"(?:%s)[A-Z0-9]{16}" % "|".join(ACCESS_KEY_PREFIXES)
                ),
                description="AWS Access Key ID",
            ),
            ScanPattern(
                name="AWS_SECRET_ACCESS_KEY",
                regex=re.compile(
                    r"(?:aws_secret_access_key|aws_secret_key|secret_key)\s*[=:]\s*"
                    r"['\"]?([A-Za-z0-9/+=]{40})(?![A-Za-z0-9/+=])['\"]?",
                    re.IGNORECASE,
                ),
                description="AWS Secret Access Key (labeled)",
                value_group=1,
            ),
            ScanPattern(
                name="AWS_SECRET_ACCESS_KEY_PATTERN",
                regex=re.compile(
                    r"(?<![A-Za-z0-9/+=])[A-Za-z0-9/+=]{40}(?![A-Za-z0-9/+=])"
                ),
                description="Unlabeled 40 character secret key candidate",
                validator=is_valid_unlabeled_secret,
            ),
            ScanPattern(
                name="AWS_SESSION_TOKEN",
                regex=re.compile(
                    r"(?:aws_session_token|aws_token|session_?token)\s*[=:]\s*"
                    r"['\"]?([A-Za-z0-9/+=]{100,})['\"]?",
                    re.IGNORECASE,
                ),
                description="AWS Session Token",
                value_group=1,
            ),
            ScanPattern(
                name="AWS_ACCOUNT_ID",
                regex=re.compile(
                    r"(?:aws_account_id|aws_account|account_?id)\s*[=:]\s*"
                    r"['\"]?(\d{12})(?!\d)['\"]?",
                    re.IGNORECASE,
                ),
                description="AWS Account ID",
                value_group=1,
            ),
            ScanPattern(
                name="AWS_MWS_KEY",
                regex=re.compile(
                    r"amzn\.mws\.[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
                    re.IGNORECASE,
                ),
                description="Amazon Marketplace Web Service key",
            ),
        ]

    def get_pattern(self) -> List[ScanPattern]:
        return list(self.patterns)

    def _accept(self, pattern: ScanPattern, value: str) -> bool:
        if is_placeholder(value):
            return False
        if pattern.validator is not None:
            return pattern.validator(value)
        return True

    def detect(self, content: str) -> List[SecretMatch]:
        """Returns every accepted (type, value) candidate in a line, in pattern order"""
        matches = []

        for pattern in self.patterns:
            for match in pattern.regex.finditer(content):
                if pattern.value_group is not None:
                    value = match.group(pattern.value_group)
                else:
                    value = match.group(0)

                if self._accept(pattern, value):
                    matches.append(SecretMatch(leak_type=pattern.name, value=value.strip()))

        return matches


_default_registry = PatternRegistry()


def detect_secrets(
    content: str, registry: Optional[PatternRegistry] = None
) -> List[SecretMatch]:
    return (registry or _default_registry).detect(content)
