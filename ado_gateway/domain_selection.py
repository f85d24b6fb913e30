"""Resolution of the enabled Azure DevOps feature domains.

The gateway exposes one route group per domain. Operators choose which groups
are mounted with ``--domains`` / ``ADO_DOMAINS``; anything that does not
resolve to at least one known domain enables the whole catalog.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Union

logger = logging.getLogger(__name__)

ALL_DOMAINS = "all"


class Domain(str, Enum):
    ADVANCED_SECURITY = "advanced-security"
    BUILDS = "builds"
    CORE = "core"
    RELEASES = "releases"
    REPOSITORIES = "repositories"
    SEARCH = "search"
    TEST_PLANS = "test-plans"
    WIKI = "wiki"
    WORK = "work"
    WORK_ITEMS = "work-items"


_CATALOG: frozenset[Domain] = frozenset(Domain)
_TOKENS: dict[str, Domain] = {domain.value: domain for domain in Domain}

DomainsInput = Union[str, Iterable[str], None]


@dataclass(frozen=True)
class InvalidDomain:
    token: str

    @property
    def message(self) -> str:
        accepted = ", ".join(available_domains())
        return (
            f"Specified invalid domain '{self.token}'. "
            f"Please specify exactly as available domains: {accepted}"
        )


def available_domains() -> tuple[str, ...]:
    return tuple(domain.value for domain in Domain)


def normalize_domains_input(domains_input: DomainsInput) -> list[str]:
    """Lowercase and trim every token; a plain string is split on commas."""
    if not domains_input:
        return []
    if isinstance(domains_input, str):
        raw_tokens: Iterable[str] = domains_input.split(",")
    else:
        raw_tokens = domains_input
    return [str(token).strip().lower() for token in raw_tokens]


def parse_domain(token: str) -> Domain | InvalidDomain:
    domain = _TOKENS.get(token)
    if domain is None:
        return InvalidDomain(token)
    return domain


@dataclass(frozen=True)
class DomainSelection:
    domains: frozenset[Domain]
    rejected: tuple[str, ...] = field(default=())

    @classmethod
    def all(cls) -> "DomainSelection":
        return cls(_CATALOG)

    @classmethod
    def from_input(cls, domains_input: DomainsInput = None) -> "DomainSelection":
        tokens = [token for token in normalize_domains_input(domains_input) if token]
        if not tokens or ALL_DOMAINS in tokens:
            return cls.all()

        enabled: set[Domain] = set()
        rejected: list[str] = []
        for token in tokens:
            parsed = parse_domain(token)
            if isinstance(parsed, InvalidDomain):
                logger.warning(parsed.message)
                rejected.append(parsed.token)
                continue
            enabled.add(parsed)

        if not enabled:
            logger.warning("No valid domains selected; enabling all domains")
            return cls(_CATALOG, tuple(rejected))
        return cls(frozenset(enabled), tuple(rejected))

    def is_enabled(self, domain: Domain | str) -> bool:
        if isinstance(domain, Domain):
            return domain in self.domains
        parsed = parse_domain(domain.strip().lower())
        return isinstance(parsed, Domain) and parsed in self.domains

    def enabled_domains(self) -> tuple[str, ...]:
        return tuple(sorted(domain.value for domain in self.domains))

    @property
    def is_full_catalog(self) -> bool:
        return self.domains == _CATALOG
