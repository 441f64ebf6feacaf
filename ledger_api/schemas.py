from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .models import GroupType, InvitationStatus, TransactionStatus, TransactionType


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Category Schemas
class CategoryScope(str, Enum):
    USER = "user"
    GROUP = "group"


class CategoryRef(BaseModel):
    scope: CategoryScope
    id: int


class CategorySummary(ORMModel):
    id: int
    name: str
    scope: CategoryScope


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=80)


class GroupCategoryCreate(CategoryCreate):
    group_id: int


class UserCategory(ORMModel):
    id: int
    name: str
    user_id: int


class GroupCategory(ORMModel):
    id: int
    name: str
    group_id: int


# User Schemas
class UserBase(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    email: EmailStr


class UserCreate(UserBase):
    password: str = Field(min_length=6)


class User(ORMModel):
    id: int
    name: str
    email: EmailStr
    created_at: datetime


class UserSummary(ORMModel):
    id: int
    name: str
    email: EmailStr


# Bank Account Schemas
class BankAccountCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    bank: Optional[str] = None
    balance: Decimal = Field(default=Decimal("0"), max_digits=14, decimal_places=2)


class BankAccount(ORMModel):
    id: int
    user_id: int
    name: str
    bank: Optional[str] = None
    balance: Decimal
    is_active: bool


# Transaction Schemas
class TransactionCreate(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    type: TransactionType
    description: Optional[str] = None
    group_id: int
    category: Optional[CategoryRef] = None
    bank_account_id: Optional[int] = None
    status: Optional[TransactionStatus] = None
    payment_method: Optional[str] = None


class TransactionUpdate(BaseModel):
    """Partial edit; only the fields present in the request are applied."""

    status: Optional[TransactionStatus] = None
    category: Optional[CategoryRef] = None
    description: Optional[str] = None
    payment_method: Optional[str] = None


class TransactionCategoryUpdate(BaseModel):
    category: Optional[CategoryRef] = None


class Transaction(ORMModel):
    id: int
    amount: Decimal
    type: TransactionType
    status: TransactionStatus
    description: Optional[str] = None
    payment_method: Optional[str] = None
    created_by_id: int
    group_id: int
    bank_account_id: Optional[int] = None
    category: Optional[CategorySummary] = None
    created_at: datetime
    updated_at: datetime


# Group Schemas
class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None


class Group(ORMModel):
    id: int
    name: str
    description: Optional[str] = None
    type: GroupType
    owner_id: int
    created_at: datetime
    updated_at: datetime


class GroupSummary(ORMModel):
    id: int
    name: str


class MemberCreate(BaseModel):
    user_id: int


class Member(ORMModel):
    id: int
    user_id: int
    group_id: int
    joined_at: datetime
    user: UserSummary


class GroupDetail(BaseModel):
    group: Group
    members: List[Member]
    transactions: List[Transaction]


# Invitation Schemas
class InvitationCreate(BaseModel):
    email: EmailStr
    group_id: int


class InvitationResponse(BaseModel):
    status: InvitationStatus


class Invitation(ORMModel):
    id: int
    sender: UserSummary
    group: GroupSummary
    status: InvitationStatus
    created_at: datetime


# Balance Schemas
class GroupBalance(ORMModel):
    group_id: int
    group_name: str
    balance: Decimal
    transaction_count: int


class AccountBalance(ORMModel):
    id: int
    name: str
    bank: Optional[str] = None
    balance: Decimal


class BalanceSummary(ORMModel):
    total_groups: int
    total_bank_accounts: int
    last_updated: datetime


class ConsolidatedBalance(ORMModel):
    total_balance: Decimal
    total_bank_balance: Decimal
    consolidated_balance: Decimal
    balance_by_group: List[GroupBalance]
    bank_accounts: List[AccountBalance]
    summary: BalanceSummary


class BalanceBreakdown(BaseModel):
    cash_balance: Decimal
    bank_balance: Decimal


class PersonalGroupBalance(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    balance: Decimal
    breakdown: BalanceBreakdown


# Misc
class Message(BaseModel):
    message: str


# Token Schemas
class Token(BaseModel):
    access_token: str
    token_type: str


class TokenData(BaseModel):
    email: Optional[str] = None
