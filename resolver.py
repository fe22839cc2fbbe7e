"""
Identity resolution entry point.

Resolver.identify takes an email and/or phone number, finds every active
contact sharing either value, and picks one branch:

A. nothing matches            -> new Primary
B. exact pair already stored  -> no change
C. one lone Primary matches   -> maybe one Secondary, judged against that Primary
D. two or more Primaries      -> merge into the oldest, then maybe one Secondary
E. anything else              -> maybe one Secondary, judged against the whole chain

The result is the consolidated view of the chain the request landed in, or
a typed Failure.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import matcher
from chain_manager import ChainManager
from contact_store import Contact, ContactStore, LinkPrecedence
from db_models import ContactResponse, FinalResponse, IdentifyRequest, IdentityStatistics
from errors import ConsistencyFailure, Failure, ResolutionError

logger = logging.getLogger(__name__)


class Branch(str, Enum):
    NO_MATCH = "no_match"
    EXACT_DUPLICATE = "exact_duplicate"
    SINGLE_PRIMARY = "single_primary"
    MULTIPLE_PRIMARIES = "multiple_primaries"
    EXISTING_CHAIN = "existing_chain"


@dataclass
class IdentifyResult:
    """Outcome of one identify call: a response or a failure, never both."""
    response: Optional[FinalResponse] = None
    failure: Optional[Failure] = None
    branch: Optional[Branch] = None

    @property
    def success(self) -> bool:
        return self.failure is None


class Resolver:
    """Runs identity resolution against a ContactStore."""

    def __init__(self, store: ContactStore, chains: Optional[ChainManager] = None):
        self.store = store
        self.chains = chains or ChainManager(store)

    def identify(self, request: IdentifyRequest) -> IdentifyResult:
        email = request.email or None
        phone_number = request.phoneNumber or None
        branch = None

        try:
            candidates = self.store.find_by_email_or_phone(email, phone_number)
            logger.info(f"Found {len(candidates)} existing contact(s)")

            if not candidates:
                branch = Branch.NO_MATCH
                contact = self._handle_no_match(email, phone_number)
            elif matcher.has_exact_match(candidates, email, phone_number):
                branch = Branch.EXACT_DUPLICATE
                contact = self._handle_exact_duplicate(candidates, email, phone_number)
            elif len(candidates) == 1 and candidates[0].is_primary:
                branch = Branch.SINGLE_PRIMARY
                contact = self._handle_single_primary(candidates[0], email, phone_number)
            else:
                primaries = sorted((c for c in candidates if c.is_primary), key=lambda c: c.seniority)
                if len(primaries) > 1:
                    branch = Branch.MULTIPLE_PRIMARIES
                    contact = self._handle_multiple_primaries(primaries, email, phone_number)
                else:
                    branch = Branch.EXISTING_CHAIN
                    contact = self._handle_existing_chain(candidates, email, phone_number)
        except ResolutionError as e:
            logger.error(f"Identity resolution failed in branch {branch}: {e.kind}: {e.message}")
            return IdentifyResult(failure=Failure.from_error(e), branch=branch)

        logger.info(f"Resolved via {branch.value} to primary {contact.primaryContactId}")
        return IdentifyResult(response=FinalResponse(contact=contact), branch=branch)

    def _existing_chain_primary(self, candidates: list[Contact]) -> Optional[Contact]:
        """
        The Primary a branch E request lands on.

        A Primary in the candidate set wins. Otherwise the oldest Secondary
        whose linkedId reaches an active Primary in one hop supplies it.
        """
        for contact in candidates:
            if contact.is_primary:
                return contact
        for contact in sorted(candidates, key=lambda c: c.seniority):
            owner = self.chains.resolve_primary(contact)
            if owner is not None:
                return owner
        return None

    def _handle_no_match(self, email: Optional[str], phone_number: Optional[str]) -> ContactResponse:
        primary = self.chains.create_primary(email, phone_number)
        return ContactResponse(
            primaryContactId=primary.id,
            emails=[primary.email] if primary.email else [],
            phoneNumbers=[primary.phone_number] if primary.phone_number else [],
            secondaryContactIds=[],
        )

    def _handle_exact_duplicate(
        self,
        candidates: list[Contact],
        email: Optional[str],
        phone_number: Optional[str],
    ) -> ContactResponse:
        duplicate = next(c for c in candidates if c.email == email and c.phone_number == phone_number)
        primary = self.chains.resolve_primary(duplicate)
        if primary is None:
            raise ConsistencyFailure(f"Contact {duplicate.id} does not resolve to a primary contact")
        return self.chains.consolidate(primary.id)

    def _handle_single_primary(
        self,
        primary: Contact,
        email: Optional[str],
        phone_number: Optional[str],
    ) -> ContactResponse:
        if matcher.primary_needs_secondary(primary, email, phone_number):
            self.chains.create_secondary(primary.id, email, phone_number)
        return self.chains.consolidate(primary.id)

    def _handle_multiple_primaries(
        self,
        primaries: list[Contact],
        email: Optional[str],
        phone_number: Optional[str],
    ) -> ContactResponse:
        survivor, newer = primaries[0], primaries[1:]
        logger.info(f"Merging {len(newer)} newer primary contact(s) into {survivor.id}")

        for contact in newer:
            self.chains.merge_chains(survivor.id, contact.id)

        chain = self.chains.get_chain(survivor.id)
        if not matcher.has_exact_match(chain, email, phone_number):
            self.chains.create_secondary(survivor.id, email, phone_number)
        return self.chains.consolidate(survivor.id)

    def _handle_existing_chain(
        self,
        candidates: list[Contact],
        email: Optional[str],
        phone_number: Optional[str],
    ) -> ContactResponse:
        primary = self._existing_chain_primary(candidates)
        if primary is None:
            primary = self._promote_oldest(candidates)

        chain = self.chains.get_chain(primary.id)
        if matcher.chain_needs_secondary(chain, email, phone_number):
            self.chains.create_secondary(primary.id, email, phone_number)
        return self.chains.consolidate(primary.id)

    def _promote_oldest(self, candidates: list[Contact]) -> Contact:
        """No candidate reaches a Primary: make the oldest one the anchor."""
        oldest = matcher.oldest(candidates)
        logger.warning(
            f"No primary reachable from contacts {[c.id for c in candidates]}; "
            f"promoting {oldest.id} to primary"
        )
        return self.store.update_linkage(
            oldest.id,
            linked_id=None,
            link_precedence=LinkPrecedence.PRIMARY,
        )

    def best_match(self, email: Optional[str], phone_number: Optional[str]) -> tuple[Optional[Contact], matcher.MatchScore]:
        """Diagnostic: the stored contact that best fits a request, with its score."""
        candidates = self.store.find_by_email_or_phone(email or None, phone_number or None)
        return matcher.find_best_match(candidates, email or None, phone_number or None)

    def identity_statistics(self) -> IdentityStatistics:
        """Summarise identity chains across the store."""
        primaries = self.store.list_primaries()
        if not primaries:
            return IdentityStatistics(
                totalIdentities=0,
                averageContactsPerIdentity=0,
                largestIdentityChain=0,
                identitiesWithMultipleEmails=0,
                identitiesWithMultiplePhones=0,
            )

        total_contacts = 0
        largest = 0
        multiple_emails = 0
        multiple_phones = 0
        for primary in primaries:
            chain = self.chains.get_chain(primary.id)
            total_contacts += len(chain)
            largest = max(largest, len(chain))
            if len({c.email for c in chain if c.email}) > 1:
                multiple_emails += 1
            if len({c.phone_number for c in chain if c.phone_number}) > 1:
                multiple_phones += 1

        return IdentityStatistics(
            totalIdentities=len(primaries),
            averageContactsPerIdentity=round(total_contacts / len(primaries), 2),
            largestIdentityChain=largest,
            identitiesWithMultipleEmails=multiple_emails,
            identitiesWithMultiplePhones=multiple_phones,
        )
