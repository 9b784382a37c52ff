"""
Database Schemas

Each collection schema is a Pydantic model; the collection name is the
lowercase class name (Client -> "client", ClientRole -> "clientrole").
MongoDB stays schemaless, these models validate data at the API boundary.

Request bodies (``*In`` / ``*Update``) sit next to the collection they write.
Derived fields (client status, active roles, property total price, referral
chain level, timestamps) are never accepted from requests.
"""
from datetime import datetime
from typing import Annotated, ClassVar, List, Literal, Optional, Tuple, Union

from bson import ObjectId
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, model_validator

from config import DEFAULT_CURRENCY


def _check_object_id(value: str) -> str:
    if not ObjectId.is_valid(value):
        raise ValueError("Invalid id")
    return value


ObjectIdStr = Annotated[str, AfterValidator(_check_object_id)]

# ----------------------------
# Enumerations
# ----------------------------

UserRole = Literal["admin", "manager", "agent"]
ClientType = Literal["individual", "broker", "agency"]
ClientStatus = Literal["active", "inactive"]
RoleName = Literal["buyer", "seller", "referrer"]
LeadSource = Literal["website", "walk-in", "instagram", "facebook", "referral", "google", "other"]
PreferredPropertyType = Literal[
    "Apartment", "House", "Villa", "Office", "Shop", "Warehouse", "Land", "Commercial"
]
PropertyType = Literal["Apartment", "House", "Villa", "Office", "Shop", "Warehouse", "Land"]
Zoning = Literal["Residential", "Commercial", "Industrial", "Mixed Use", "Agricultural"]
Furnishing = Literal["Furnished", "Semi-Furnished", "Unfurnished"]
PropertyStatus = Literal["Available", "Under Contract", "Sold", "Rented", "Off Market"]
Month = Literal[
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
LinkType = Literal["existing", "new"]
RoleStatus = Literal["active", "inactive", "completed", "cancelled"]
CommissionType = Literal["fixed", "percentage"]
ReferredType = Literal["client", "property"]
CommissionStatus = Literal["pending", "partial", "paid", "cancelled"]
ReferralStatus = Literal["active", "converted", "expired", "cancelled"]
Priority = Literal["low", "medium", "high", "urgent"]
LookoutStatus = Literal["active", "on-hold", "completed", "cancelled"]
TaskStatus = Literal["pending", "in-progress", "completed", "cancelled"]


class Schema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class UpdateSchema(Schema):
    """Partial update body: fields may be omitted, only those in ``nullable`` may be sent as null."""
    nullable: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="after")
    def check_nulls(self):
        cleared = sorted(
            name for name in self.model_fields_set
            if getattr(self, name) is None and name not in self.nullable
        )
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        return self


class Range(Schema):
    min: Optional[float] = Field(None, ge=0)
    max: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("min must not exceed max")
        return self


class BudgetRange(Range):
    currency: str = DEFAULT_CURRENCY


class AreaRange(Range):
    unit: str = "sq ft"


# ----------------------------
# Users
# ----------------------------

class User(Schema):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="BCrypt hash of password")
    phone: Optional[str] = None
    address: Optional[str] = None
    role: UserRole = Field("agent", description="User role")
    is_active: bool = Field(True)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserCreate(Schema):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    address: Optional[str] = None
    role: Optional[str] = Field(default="agent")  # admin, manager, agent


class UserPublic(BaseModel):
    id: str
    name: str
    email: EmailStr
    role: str


# ----------------------------
# Clients
# ----------------------------

class Preferences(Schema):
    property_types: List[PreferredPropertyType] = Field(default_factory=list)
    cities: List[str] = Field(default_factory=list)
    budget: Range = Field(default_factory=Range)
    area: Range = Field(default_factory=Range)


class Client(Schema):
    name: str = Field(..., min_length=2)
    email: EmailStr
    phone: str = Field(..., min_length=10)
    address: Optional[str] = None
    type: ClientType = "individual"
    status: ClientStatus = "inactive"
    active_roles: List[RoleName] = Field(default_factory=list)
    location: Optional[str] = None
    lead_source: LeadSource = "other"
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=2000)
    preferences: Preferences = Field(default_factory=Preferences)
    assigned_to: Optional[ObjectIdStr] = None


class ClientIn(Schema):
    name: str = Field(..., min_length=2)
    email: EmailStr
    phone: str = Field(..., min_length=10)
    address: Optional[str] = None
    type: ClientType = "individual"
    location: Optional[str] = None
    lead_source: LeadSource = "other"
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=2000)
    preferences: Preferences = Field(default_factory=Preferences)
    assigned_to: Optional[ObjectIdStr] = None


class ClientUpdate(UpdateSchema):
    nullable: ClassVar[Tuple[str, ...]] = ("address", "location", "notes", "assigned_to")

    name: Optional[str] = Field(None, min_length=2)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=10)
    address: Optional[str] = None
    type: Optional[ClientType] = None
    location: Optional[str] = None
    lead_source: Optional[LeadSource] = None
    tags: Optional[List[str]] = None
    notes: Optional[str] = Field(None, max_length=2000)
    preferences: Optional[Preferences] = None
    assigned_to: Optional[ObjectIdStr] = None


# ----------------------------
# Client roles
# ----------------------------

class RoleCommission(Schema):
    type: CommissionType = "fixed"
    value: float = Field(0, ge=0)
    currency: str = DEFAULT_CURRENCY


class ClientRole(Schema):
    client_id: ObjectIdStr
    role: RoleName
    property_id: Optional[ObjectIdStr] = None
    status: RoleStatus = "active"
    commission: RoleCommission = Field(default_factory=RoleCommission)
    relationship_note: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)
    assigned_to: Optional[ObjectIdStr] = None


class ClientRoleIn(ClientRole):
    pass


class ClientRoleUpdate(UpdateSchema):
    nullable: ClassVar[Tuple[str, ...]] = ("relationship_note", "notes", "assigned_to")

    status: Optional[RoleStatus] = None
    commission: Optional[RoleCommission] = None
    relationship_note: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)
    assigned_to: Optional[ObjectIdStr] = None


# ----------------------------
# Files
# ----------------------------

class FileRef(Schema):
    name: str
    type: str
    size: int = Field(..., ge=0)
    original_size: int = Field(..., ge=0)
    drive_id: str
    drive_url: str
    compression_ratio: Optional[float] = Field(None, ge=0, le=100)
    download_url: Optional[str] = None
    uploaded_at: Optional[datetime] = None


class Photo(FileRef):
    pass


class Attachment(Schema):
    name: str
    type: str
    size: int = Field(..., ge=0)
    drive_id: str
    drive_url: str


# ----------------------------
# Properties
# ----------------------------

class PropertyAge(Schema):
    year: Optional[int] = Field(None, ge=1900)
    month: Optional[Month] = None

    @model_validator(mode="after")
    def check_year(self):
        if self.year is not None and self.year > datetime.now().year:
            raise ValueError("year cannot be in the future")
        return self


class Contact(Schema):
    """A party captured inline while creating a property (becomes a client)."""
    name: str = Field(..., min_length=2)
    email: EmailStr
    phone: str = Field(..., min_length=10)
    address: Optional[str] = None


class Property(Schema):
    title: str = Field(..., min_length=3)
    address: str = Field(..., min_length=10)
    city: str = Field(..., min_length=1)
    zoning: Zoning
    zoning_note: Optional[str] = None
    furnishing: Optional[Furnishing] = None
    age: Optional[PropertyAge] = None
    type: PropertyType
    area: float = Field(..., ge=0)
    per_sq_ft_rate: float = Field(..., ge=0)
    status: PropertyStatus
    notes: Optional[str] = Field(None, max_length=1000)
    additional_notes: Optional[str] = Field(None, max_length=1000)
    files: List[FileRef] = Field(default_factory=list)
    assigned_to: Optional[ObjectIdStr] = None


class PropertyIn(Property):
    owner_type: LinkType
    owner: Union[ObjectIdStr, Contact]
    ref_type: Optional[LinkType] = None
    ref: Optional[Union[ObjectIdStr, Contact]] = None

    @model_validator(mode="after")
    def check_links(self):
        if self.owner_type == "existing" and not isinstance(self.owner, str):
            raise ValueError("owner must be a client id when owner_type is 'existing'")
        if self.owner_type == "new" and not isinstance(self.owner, Contact):
            raise ValueError("owner must be a contact when owner_type is 'new'")
        if self.ref is not None:
            if self.ref_type is None:
                raise ValueError("ref_type is required with ref")
            if self.ref_type == "existing" and not isinstance(self.ref, str):
                raise ValueError("ref must be a client id when ref_type is 'existing'")
            if self.ref_type == "new" and not isinstance(self.ref, Contact):
                raise ValueError("ref must be a contact when ref_type is 'new'")
        return self


class PropertyUpdate(UpdateSchema):
    nullable: ClassVar[Tuple[str, ...]] = ("zoning_note", "furnishing", "age", "notes", "additional_notes", "assigned_to")

    title: Optional[str] = Field(None, min_length=3)
    address: Optional[str] = Field(None, min_length=10)
    city: Optional[str] = Field(None, min_length=1)
    zoning: Optional[Zoning] = None
    zoning_note: Optional[str] = None
    furnishing: Optional[Furnishing] = None
    age: Optional[PropertyAge] = None
    type: Optional[PropertyType] = None
    area: Optional[float] = Field(None, ge=0)
    per_sq_ft_rate: Optional[float] = Field(None, ge=0)
    status: Optional[PropertyStatus] = None
    notes: Optional[str] = Field(None, max_length=1000)
    additional_notes: Optional[str] = Field(None, max_length=1000)
    files: Optional[List[FileRef]] = None
    assigned_to: Optional[ObjectIdStr] = None


# ----------------------------
# Referrals
# ----------------------------

class ReferralCommission(Schema):
    type: CommissionType
    value: float = Field(..., ge=0)
    currency: str = DEFAULT_CURRENCY
    promised: float = Field(..., ge=0)
    paid: float = Field(0, ge=0)


class ReferralCommissionUpdate(UpdateSchema):
    type: Optional[CommissionType] = None
    value: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    promised: Optional[float] = Field(None, ge=0)
    paid: Optional[float] = Field(None, ge=0)


class Referral(Schema):
    referred_by_client_id: ObjectIdStr
    referred_type: ReferredType
    referred_client_id: Optional[ObjectIdStr] = None
    referred_property_id: Optional[ObjectIdStr] = None
    deal_id: Optional[ObjectIdStr] = None
    commission: ReferralCommission
    commission_status: CommissionStatus = "pending"
    status: ReferralStatus = "active"
    parent_referral_id: Optional[ObjectIdStr] = None
    chain_level: int = Field(1, ge=1)
    notes: Optional[str] = Field(None, max_length=1000)
    assigned_to: Optional[ObjectIdStr] = None
    converted_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None


class ReferralIn(Schema):
    referred_by_client_id: ObjectIdStr
    referred_type: ReferredType
    referred_client_id: Optional[ObjectIdStr] = None
    referred_property_id: Optional[ObjectIdStr] = None
    deal_id: Optional[ObjectIdStr] = None
    commission: ReferralCommission
    notes: Optional[str] = Field(None, max_length=1000)
    parent_referral_id: Optional[ObjectIdStr] = None
    assigned_to: Optional[ObjectIdStr] = None


class ReferralUpdate(UpdateSchema):
    nullable: ClassVar[Tuple[str, ...]] = ("deal_id", "notes", "assigned_to")

    status: Optional[ReferralStatus] = None
    commission_status: Optional[CommissionStatus] = None
    commission: Optional[ReferralCommissionUpdate] = None
    deal_id: Optional[ObjectIdStr] = None
    notes: Optional[str] = Field(None, max_length=1000)
    assigned_to: Optional[ObjectIdStr] = None


# ----------------------------
# Lookouts
# ----------------------------

class Lookout(Schema):
    client_id: ObjectIdStr
    title: str = Field(..., min_length=3)
    property_types: List[PreferredPropertyType] = Field(default_factory=list)
    cities: List[str] = Field(default_factory=list)
    budget: BudgetRange = Field(default_factory=BudgetRange)
    area: AreaRange = Field(default_factory=AreaRange)
    requirements: Optional[str] = Field(None, max_length=2000)
    priority: Priority = "medium"
    status: LookoutStatus = "active"
    assigned_to: Optional[ObjectIdStr] = None


class LookoutIn(Lookout):
    pass


class LookoutUpdate(UpdateSchema):
    nullable: ClassVar[Tuple[str, ...]] = ("requirements", "assigned_to")

    title: Optional[str] = Field(None, min_length=3)
    property_types: Optional[List[PreferredPropertyType]] = None
    cities: Optional[List[str]] = None
    budget: Optional[BudgetRange] = None
    area: Optional[AreaRange] = None
    requirements: Optional[str] = Field(None, max_length=2000)
    priority: Optional[Priority] = None
    status: Optional[LookoutStatus] = None
    assigned_to: Optional[ObjectIdStr] = None


# ----------------------------
# Tasks
# ----------------------------

class Task(Schema):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: TaskStatus = "pending"
    priority: Priority = "medium"
    assigned_to: Optional[ObjectIdStr] = None
    property: Optional[ObjectIdStr] = None
    client: Optional[ObjectIdStr] = None
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    is_active: bool = True


class TaskIn(Schema):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: TaskStatus = "pending"
    priority: Priority = "medium"
    assigned_to: Optional[ObjectIdStr] = None
    property: Optional[ObjectIdStr] = None
    client: Optional[ObjectIdStr] = None
    due_date: Optional[datetime] = None


class TaskUpdate(UpdateSchema):
    nullable: ClassVar[Tuple[str, ...]] = ("description", "assigned_to", "property", "client", "due_date")

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    assigned_to: Optional[ObjectIdStr] = None
    property: Optional[ObjectIdStr] = None
    client: Optional[ObjectIdStr] = None
    due_date: Optional[datetime] = None


# ----------------------------
# Messaging
# ----------------------------

class Thread(Schema):
    title: str = Field(..., min_length=1)
    participants: List[ObjectIdStr] = Field(default_factory=list)
    property: Optional[ObjectIdStr] = None
    client: Optional[ObjectIdStr] = None
    is_active: bool = True


class ThreadIn(Schema):
    title: str = Field(..., min_length=1)
    participants: List[ObjectIdStr] = Field(default_factory=list)
    property: Optional[ObjectIdStr] = None
    client: Optional[ObjectIdStr] = None


class Message(Schema):
    content: str = Field(..., min_length=1)
    sender: ObjectIdStr
    thread: ObjectIdStr
    is_read: bool = False
    attachments: List[Attachment] = Field(default_factory=list)


class MessageIn(Schema):
    content: str = Field(..., min_length=1)
    attachments: List[Attachment] = Field(default_factory=list)
