"""
Detection and repair of broken contact linkage.

Runs on demand, outside the identify path. Every repair removes the
condition that triggered it, so a second run straight after a first one
finds nothing to do. Repairs never merge chains; they only promote
contacts to Primary, clear stray links, or soft-delete empty rows.
"""
import logging
from dataclasses import dataclass, field

import matcher
from contact_store import Contact, ContactStore, LinkPrecedence
from errors import StoreFailure

logger = logging.getLogger(__name__)


@dataclass
class IntegrityReport:
    """Violations found in the store, without changing anything."""
    issues: list[str] = field(default_factory=list)
    orphaned_secondary_ids: list[int] = field(default_factory=list)
    secondary_link_ids: list[int] = field(default_factory=list)
    cycle_ids: list[int] = field(default_factory=list)
    stray_primary_link_ids: list[int] = field(default_factory=list)
    empty_contact_ids: list[int] = field(default_factory=list)
    split_identities: list[list[int]] = field(default_factory=list)
    linkable_group_count: int = 0
    isolated_contact_count: int = 0

    @property
    def is_valid(self) -> bool:
        return not self.issues


@dataclass
class RepairReport:
    """Ids touched by one repair run, per kind of fix."""
    cycles_broken: list[int] = field(default_factory=list)
    stray_primary_links_cleared: list[int] = field(default_factory=list)
    secondary_links_promoted: list[int] = field(default_factory=list)
    orphans_promoted: list[int] = field(default_factory=list)
    empty_contacts_removed: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def total_fixes(self) -> int:
        return (
            len(self.cycles_broken)
            + len(self.stray_primary_links_cleared)
            + len(self.secondary_links_promoted)
            + len(self.orphans_promoted)
            + len(self.empty_contacts_removed)
        )


def find_cycle_breakers(contacts: dict[int, Contact]) -> list[int]:
    """
    Ids that must be unlinked to leave no cycles in linkedId chains.

    Walks from every contact with a visited set; the first node seen twice
    on a walk is the breaker and its link is treated as cleared for the
    remaining walks.
    """
    links = {cid: c.linked_id for cid, c in contacts.items()}
    acyclic: set[int] = set()
    breakers = []

    for start in sorted(links):
        visited = set()
        current = start
        while current is not None and current in links and current not in acyclic:
            if current in visited:
                breakers.append(current)
                links[current] = None
                break
            visited.add(current)
            current = links[current]
        acyclic |= visited

    return breakers


def _secondary_links(contacts: dict[int, Contact]) -> list[Contact]:
    return [
        c for c in contacts.values()
        if c.is_secondary and c.linked_id in contacts and contacts[c.linked_id].is_secondary
    ]


def _orphans(contacts: dict[int, Contact]) -> list[Contact]:
    return [
        c for c in contacts.values()
        if c.is_secondary and (c.linked_id not in contacts or not contacts[c.linked_id].is_primary)
    ]


def _removable_empties(contacts: dict[int, Contact]) -> list[Contact]:
    """Empty contacts nothing links to; an empty chain anchor is left alone."""
    referenced = {c.linked_id for c in contacts.values() if c.linked_id is not None}
    return [c for c in contacts.values() if c.is_empty and c.id not in referenced]


class IntegrityGuard:
    """Finds and heals orphans, Secondary-to-Secondary links and cycles."""

    def __init__(self, store: ContactStore):
        self.store = store

    def _snapshot(self) -> dict[int, Contact]:
        return {c.id: c for c in self.store.list_active()}

    def inspect(self) -> IntegrityReport:
        contacts = self._snapshot()
        report = IntegrityReport()

        validation = matcher.validate_chain(list(contacts.values()))
        report.orphaned_secondary_ids = [c.id for c in validation.orphaned_secondaries]
        report.secondary_link_ids = [c.id for c in validation.secondary_links]
        report.cycle_ids = find_cycle_breakers(contacts)
        report.stray_primary_link_ids = [
            c.id for c in contacts.values() if c.is_primary and c.linked_id is not None
        ]
        report.empty_contact_ids = [c.id for c in contacts.values() if c.is_empty]

        linkage = matcher.analyze_linkage(list(contacts.values()))
        report.linkable_group_count = len(linkage.linkable_groups)
        report.isolated_contact_count = len(linkage.isolated)
        for group in linkage.linkable_groups:
            owners = {self._owner_id(c, contacts) for c in group}
            owners.discard(None)
            if len(owners) > 1:
                report.split_identities.append(sorted(owners))

        if report.orphaned_secondary_ids:
            report.issues.append(f"Found {len(report.orphaned_secondary_ids)} orphaned secondary contact(s)")
        if report.secondary_link_ids:
            report.issues.append(
                f"Found {len(report.secondary_link_ids)} secondary contact(s) linked to other secondary contacts"
            )
        if report.cycle_ids:
            report.issues.append(f"Found {len(report.cycle_ids)} cycle(s) in contact links")
        if report.stray_primary_link_ids:
            report.issues.append(f"Found {len(report.stray_primary_link_ids)} primary contact(s) with a linkedId")
        if report.empty_contact_ids:
            report.issues.append(
                f"Found {len(report.empty_contact_ids)} contact(s) with both email and phone number null"
            )
        if report.split_identities:
            report.issues.append(
                f"Found {len(report.split_identities)} group(s) of linked contacts spread over several primaries"
            )

        return report

    @staticmethod
    def _owner_id(contact: Contact, contacts: dict[int, Contact]):
        if contact.is_primary:
            return contact.id
        target = contacts.get(contact.linked_id)
        if target is not None and target.is_primary:
            return target.id
        return None

    def repair(self) -> RepairReport:
        """Apply every fix once, in dependency order, against a fresh snapshot."""
        contacts = self._snapshot()
        report = RepairReport()

        for contact_id in find_cycle_breakers(contacts):
            if self._promote(contacts, contact_id, report):
                report.cycles_broken.append(contact_id)

        for contact in [c for c in contacts.values() if c.is_primary and c.linked_id is not None]:
            try:
                contacts[contact.id] = self.store.update_linkage(contact.id, linked_id=None)
                report.stray_primary_links_cleared.append(contact.id)
            except StoreFailure as e:
                self._record_error(report, f"clear link of primary {contact.id}", e)

        for contact in _secondary_links(contacts):
            if self._promote(contacts, contact.id, report):
                report.secondary_links_promoted.append(contact.id)

        for contact in _orphans(contacts):
            if self._promote(contacts, contact.id, report):
                report.orphans_promoted.append(contact.id)

        # Removing one empty contact can free the empty contact it pointed at
        removable = _removable_empties(contacts)
        while removable:
            for contact in removable:
                try:
                    self.store.soft_delete(contact.id)
                    report.empty_contacts_removed.append(contact.id)
                except StoreFailure as e:
                    self._record_error(report, f"soft delete of empty contact {contact.id}", e)
                del contacts[contact.id]
            removable = _removable_empties(contacts)

        if report.total_fixes:
            logger.warning(
                f"Integrity repair applied {report.total_fixes} fix(es): "
                f"cycles={report.cycles_broken} stray={report.stray_primary_links_cleared} "
                f"secondary_links={report.secondary_links_promoted} orphans={report.orphans_promoted} "
                f"empty={report.empty_contacts_removed}"
            )
        else:
            logger.info("Integrity repair found nothing to fix")
        return report

    def _promote(self, contacts: dict[int, Contact], contact_id: int, report: RepairReport) -> bool:
        try:
            contacts[contact_id] = self.store.update_linkage(
                contact_id,
                linked_id=None,
                link_precedence=LinkPrecedence.PRIMARY,
            )
            return True
        except StoreFailure as e:
            self._record_error(report, f"promotion of contact {contact_id}", e)
            return False

    @staticmethod
    def _record_error(report: RepairReport, action: str, error: StoreFailure):
        logger.error(f"Integrity repair: {action} failed: {error}")
        report.errors.append(f"{action}: {error.message}")
