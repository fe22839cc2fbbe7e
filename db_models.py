from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional, List



class IdentifyRequest(BaseModel):
    email: Optional[str] = None
    phoneNumber: Optional[str] = None

class ContactResponse(BaseModel):
    primaryContactId: int
    emails: List[str]
    phoneNumbers: List[str]
    secondaryContactIds: List[int]

class FinalResponse(BaseModel):
    contact: ContactResponse

class AddContactRequest(BaseModel):
    id: Optional[int] = None
    email: Optional[str] = None
    phoneNumber: Optional[str] = None
    linkedId: Optional[int] = None
    linkPrecedence: Optional[str] = Field(default="primary", pattern="^(primary|secondary)$")
    createdAt: Optional[datetime] = None

class IdentityStatistics(BaseModel):
    totalIdentities: int
    averageContactsPerIdentity: float
    largestIdentityChain: int
    identitiesWithMultipleEmails: int
    identitiesWithMultiplePhones: int

class HealthResponse(BaseModel):
    status: str
    database: str
    totalContacts: Optional[int] = None
    primaryContacts: Optional[int] = None
    secondaryContacts: Optional[int] = None

class IntegrityResponse(BaseModel):
    isValid: bool
    issues: List[str]
    orphanedSecondaryIds: List[int]
    secondaryLinkIds: List[int]
    cycleIds: List[int]
    strayPrimaryLinkIds: List[int]
    emptyContactIds: List[int]
    splitIdentities: List[List[int]]
    linkableGroups: int
    isolatedContacts: int

class DetailedHealthResponse(HealthResponse):
    statistics: Optional[IdentityStatistics] = None
    integrity: Optional[IntegrityResponse] = None

class RepairResponse(BaseModel):
    totalFixes: int
    cyclesBroken: List[int]
    strayPrimaryLinksCleared: List[int]
    secondaryLinksPromoted: List[int]
    orphansPromoted: List[int]
    emptyContactsRemoved: List[int]
    errors: List[str]

class MatchScoreResponse(BaseModel):
    contactId: Optional[int] = None
    score: int
    factors: List[str]
    isExactMatch: bool

class DatabaseHealthResponse(BaseModel):
    status: str
    totalContacts: int
    primaryContacts: int
    secondaryContacts: int
    orphanedSecondaryContacts: int
    deletedContacts: int
    lastCreatedAt: Optional[datetime] = None
    integrity: IntegrityResponse

class SeedResponse(BaseModel):
    message: str
    contactIds: List[int]

class CleanResponse(BaseModel):
    message: str
    deleted: int
