"""
Mutating operations on a single identity chain.

A chain is one Primary plus every active Secondary whose linkedId points
at it. Merges run step by step against the store with no surrounding
transaction; a failed step is logged and the rest still run, leaving any
leftover damage to the integrity repair pass.
"""
import logging
from typing import Optional

from contact_store import Contact, ContactStore, LinkPrecedence
from db_models import ContactResponse
from errors import ConsistencyFailure, StoreFailure

logger = logging.getLogger(__name__)

# One two-member chain and two lone primaries
SAMPLE_CHAINS = [
    [("lorraine@hillvalley.edu", "123456"), ("mcfly@hillvalley.edu", "123456")],
    [("george@hillvalley.edu", "919191")],
    [("biffsucks@hillvalley.edu", "717171")],
]


class ChainManager:
    """Creates, merges and projects identity chains."""

    def __init__(self, store: ContactStore):
        self.store = store

    def create_primary(self, email: Optional[str], phone_number: Optional[str]) -> Contact:
        contact = self.store.create_contact(
            email=email,
            phone_number=phone_number,
            linked_id=None,
            link_precedence=LinkPrecedence.PRIMARY,
        )
        logger.info(f"Created primary contact {contact.id}")
        return contact

    def create_secondary(self, primary_id: int, email: Optional[str], phone_number: Optional[str]) -> Contact:
        contact = self.store.create_contact(
            email=email,
            phone_number=phone_number,
            linked_id=primary_id,
            link_precedence=LinkPrecedence.SECONDARY,
        )
        logger.info(f"Created secondary contact {contact.id} under primary {primary_id}")
        return contact

    def resolve_primary(self, contact: Contact) -> Optional[Contact]:
        """
        Find the Primary that owns a contact.

        Follows at most one linkedId hop. Returns None when the link is
        missing or lands on anything other than an active Primary.
        """
        if contact.is_primary:
            return contact
        if contact.linked_id is None:
            return None
        target = self.store.find_by_id(contact.linked_id)
        if target is None or not target.is_primary:
            return None
        return target

    def get_chain(self, contact_id: int) -> list[Contact]:
        """
        Get the whole chain that a contact belongs to.

        Returns the owning Primary first, then its Secondaries oldest first.
        A contact whose owner cannot be resolved comes back alone, and an
        unknown id gives an empty list.
        """
        contact = self.store.find_by_id(contact_id)
        if contact is None:
            return []

        primary = self.resolve_primary(contact)
        if primary is None:
            return [contact]

        secondaries = [c for c in self.store.find_by_linked_id(primary.id) if c.is_secondary]
        return [primary] + secondaries

    def merge_chains(self, older_primary_id: int, newer_primary_id: int) -> list[Contact]:
        """
        Fold the newer Primary's chain into the older one.

        The newer Primary is demoted under the older Primary and every
        record linked to it is re-pointed there as a Secondary, including
        records wrongly flagged Primary. Returns the records that were
        actually updated.
        """
        if older_primary_id == newer_primary_id:
            return []

        updated = []

        try:
            linked = self.store.find_by_linked_id(newer_primary_id)
        except StoreFailure as e:
            logger.error(f"Could not load chain of {newer_primary_id} for merge: {e}")
            linked = []

        try:
            updated.append(self.store.update_linkage(
                newer_primary_id,
                linked_id=older_primary_id,
                link_precedence=LinkPrecedence.SECONDARY,
            ))
        except StoreFailure as e:
            logger.error(f"Failed to demote primary {newer_primary_id} under {older_primary_id}: {e}")

        for contact in linked:
            if contact.id in (older_primary_id, newer_primary_id):
                continue
            try:
                updated.append(self.store.update_linkage(
                    contact.id,
                    linked_id=older_primary_id,
                    link_precedence=LinkPrecedence.SECONDARY,
                ))
            except StoreFailure as e:
                logger.error(f"Failed to re-point contact {contact.id} to {older_primary_id}: {e}")

        logger.info(
            f"Merged chain {newer_primary_id} into {older_primary_id} "
            f"({len(updated)} record(s) updated)"
        )
        return updated

    def consolidate(self, primary_id: int) -> ContactResponse:
        """
        Project a chain into its consolidated view.

        Emails and phone numbers are deduplicated in order of first
        appearance, taking the Primary's values first and then each
        Secondary's, oldest first.
        """
        chain = self.get_chain(primary_id)
        primary = next((c for c in chain if c.is_primary), None)
        if primary is None:
            raise ConsistencyFailure(f"No primary contact found for contact {primary_id}")

        secondaries = sorted((c for c in chain if c.is_secondary), key=lambda c: c.seniority)

        emails = []
        phone_numbers = []
        for contact in [primary] + secondaries:
            if contact.email and contact.email not in emails:
                emails.append(contact.email)
            if contact.phone_number and contact.phone_number not in phone_numbers:
                phone_numbers.append(contact.phone_number)

        return ContactResponse(
            primaryContactId=primary.id,
            emails=emails,
            phoneNumbers=phone_numbers,
            secondaryContactIds=[c.id for c in secondaries],
        )

    def seed_sample_chains(self) -> list[Contact]:
        """Insert SAMPLE_CHAINS, first pair of each chain as its Primary."""
        created = []
        for (email, phone_number), *members in SAMPLE_CHAINS:
            primary = self.create_primary(email, phone_number)
            created.append(primary)
            for member_email, member_phone in members:
                created.append(self.create_secondary(primary.id, member_email, member_phone))
        return created
