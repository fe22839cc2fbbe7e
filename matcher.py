"""
Pure comparison logic for contacts.

Nothing here touches the store: these functions decide whether contacts
share an attribute, group them into linkable components, score candidates
for diagnostics, and check a set of contacts for linkage violations.
"""
from dataclasses import dataclass, field
from typing import Optional

from contact_store import Contact


def has_shared_email(a: Contact, b: Contact) -> bool:
    return a.email is not None and b.email is not None and a.email == b.email


def has_shared_phone(a: Contact, b: Contact) -> bool:
    return (
        a.phone_number is not None
        and b.phone_number is not None
        and a.phone_number == b.phone_number
    )


def matches(a: Contact, b: Contact) -> bool:
    """True iff the two contacts share a non-null email or phone number."""
    return has_shared_email(a, b) or has_shared_phone(a, b)


def oldest(contacts: list[Contact]) -> Contact:
    return min(contacts, key=lambda c: c.seniority)


def split_by_precedence(contacts: list[Contact]) -> tuple[list[Contact], list[Contact]]:
    primaries = [c for c in contacts if c.is_primary]
    secondaries = [c for c in contacts if c.is_secondary]
    return primaries, secondaries


class _DisjointSet:
    """Union-find over list indices with path halving."""

    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, a: int, b: int):
        root_a, root_b = self.find(a), self.find(b)
        if root_a != root_b:
            # Keep the lower index as root so groups order by first member
            if root_b < root_a:
                root_a, root_b = root_b, root_a
            self.parent[root_b] = root_a


def group_linkable(contacts: list[Contact]) -> list[list[Contact]]:
    """
    Partition contacts into connected components of the shared-attribute graph.

    Two contacts are in the same group when a path of shared emails or
    phone numbers joins them. Membership does not depend on input order;
    each group keeps input order and groups are ordered by their first
    member. Contacts with nothing in common come back as one-member groups.
    """
    sets = _DisjointSet(len(contacts))
    first_seen: dict[tuple[str, str], int] = {}

    for index, contact in enumerate(contacts):
        for key in (("email", contact.email), ("phone", contact.phone_number)):
            if key[1] is None:
                continue
            if key in first_seen:
                sets.union(first_seen[key], index)
            else:
                first_seen[key] = index

    groups: dict[int, list[Contact]] = {}
    for index, contact in enumerate(contacts):
        groups.setdefault(sets.find(index), []).append(contact)
    return [groups[root] for root in sorted(groups)]


@dataclass
class LinkageAnalysis:
    primaries: list[Contact]
    secondaries: list[Contact]
    linkable_groups: list[list[Contact]]
    isolated: list[Contact]


def analyze_linkage(contacts: list[Contact]) -> LinkageAnalysis:
    """Split contacts by precedence and by whether they link to anything."""
    primaries, secondaries = split_by_precedence(contacts)
    groups = group_linkable(contacts)
    return LinkageAnalysis(
        primaries=primaries,
        secondaries=secondaries,
        linkable_groups=[g for g in groups if len(g) > 1],
        isolated=[g[0] for g in groups if len(g) == 1],
    )


def has_exact_match(contacts: list[Contact], email: Optional[str], phone_number: Optional[str]) -> bool:
    """Some contact carries exactly this (email, phone) pair; None equals None."""
    return any(c.email == email and c.phone_number == phone_number for c in contacts)


def primary_needs_secondary(primary: Contact, email: Optional[str], phone_number: Optional[str]) -> bool:
    """
    Decide whether a request adds information to a lone Primary.

    Only the Primary's own fields are compared. A secondary is needed when
    one field matches and the other is new and non-null, or when a field
    the Primary lacks gets filled while the other matches.
    """
    if primary.email == email and primary.phone_number == phone_number:
        return False

    email_matches = email is not None and primary.email == email
    phone_matches = phone_number is not None and primary.phone_number == phone_number

    # A differing value on the Primary and a missing one both count as new
    if email_matches and phone_number is not None and primary.phone_number != phone_number:
        return True
    if phone_matches and email is not None and primary.email != email:
        return True

    return False


def chain_needs_secondary(chain: list[Contact], email: Optional[str], phone_number: Optional[str]) -> bool:
    """
    Decide whether a request adds information to a whole chain.

    True iff the pair is not already present verbatim, the request brings
    at least one value absent from every member, and at least one request
    value already appears somewhere in the chain.
    """
    if has_exact_match(chain, email, phone_number):
        return False

    known_emails = {c.email for c in chain if c.email is not None}
    known_phones = {c.phone_number for c in chain if c.phone_number is not None}

    has_new_email = email is not None and email not in known_emails
    has_new_phone = phone_number is not None and phone_number not in known_phones
    has_matching_email = email is not None and email in known_emails
    has_matching_phone = phone_number is not None and phone_number in known_phones

    return (has_new_email or has_new_phone) and (has_matching_email or has_matching_phone)


@dataclass
class MatchScore:
    score: int
    factors: list[str] = field(default_factory=list)
    is_exact_match: bool = False


def score_match(contact: Contact, email: Optional[str], phone_number: Optional[str]) -> MatchScore:
    """Diagnostic ranking of one contact against a request. Never drives resolution."""
    if contact.email == email and contact.phone_number == phone_number:
        return MatchScore(score=100, factors=["Exact match: same email and phone"], is_exact_match=True)

    score = 0
    factors = []

    if email is not None and contact.email == email:
        score += 50
        factors.append("Email match")
    if phone_number is not None and contact.phone_number == phone_number:
        score += 50
        factors.append("Phone match")

    # Weaker signal: the other side is blank rather than conflicting
    if email is not None and contact.email is None and phone_number is not None and contact.phone_number == phone_number:
        score += 30
        factors.append("Phone match with missing email")
    if phone_number is not None and contact.phone_number is None and email is not None and contact.email == email:
        score += 30
        factors.append("Email match with missing phone")

    return MatchScore(score=score, factors=factors)


def find_best_match(
    contacts: list[Contact],
    email: Optional[str],
    phone_number: Optional[str],
) -> tuple[Optional[Contact], MatchScore]:
    """Highest-scoring contact for the request; the earliest wins ties."""
    best: Optional[Contact] = None
    best_score = MatchScore(score=0)
    for contact in contacts:
        result = score_match(contact, email, phone_number)
        if result.score > best_score.score:
            best, best_score = contact, result
    return best, best_score


@dataclass
class ChainValidation:
    is_valid: bool
    issues: list[str]
    primary_count: int
    orphaned_secondaries: list[Contact]
    secondary_links: list[Contact]


def validate_chain(contacts: list[Contact]) -> ChainValidation:
    """
    Check a set of contacts for linkage violations.

    Reports more than one Primary, Secondaries whose linkedId does not
    reach a Primary in the set, and Secondaries pointing at another
    Secondary. Only contacts inside the set are considered.
    """
    by_id = {c.id: c for c in contacts}
    primaries, secondaries = split_by_precedence(contacts)
    issues = []

    if len(primaries) > 1:
        issues.append(f"Multiple primary contacts found: {len(primaries)}")

    orphaned = []
    secondary_links = []
    for secondary in secondaries:
        target = by_id.get(secondary.linked_id) if secondary.linked_id is not None else None
        if target is None or not target.is_primary:
            orphaned.append(secondary)
        if target is not None and target.is_secondary:
            secondary_links.append(secondary)

    if orphaned:
        issues.append(f"Orphaned secondary contacts: {len(orphaned)}")
    if secondary_links:
        issues.append(f"Secondary contacts linked to other secondaries: {len(secondary_links)}")

    return ChainValidation(
        is_valid=not issues,
        issues=issues,
        primary_count=len(primaries),
        orphaned_secondaries=orphaned,
        secondary_links=secondary_links,
    )
