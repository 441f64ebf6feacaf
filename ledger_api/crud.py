import structlog
from sqlalchemy.orm import Session

from . import errors, models, schemas
from .config import get_settings
from .database import atomic

logger = structlog.get_logger(__name__)

DEFAULT_CATEGORIES = [
    "Salary",
    "Freelance",
    "Investments",
    "Sales",
    "Earnings",
    "Bonuses",
    "Other Income",
    "Food",
    "Transport",
    "Housing",
    "Health",
    "Education",
    "Entertainment",
    "Shopping",
    "Services",
    "Taxes",
    "Insurance",
    "Travel",
    "Pets",
    "Donations",
    "Other Expenses",
]


# Users
def get_user(db: Session, user_id: int):
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email).first()


def create_user(db: Session, user: schemas.UserCreate, hashed_password: str):
    """Register a user together with their personal group and default categories."""
    if get_user_by_email(db, user.email):
        raise errors.Conflict("Email already registered", details={"email": ["This email is already in use"]})

    settings = get_settings()
    with atomic(db):
        db_user = models.User(name=user.name, email=user.email, hashed_password=hashed_password)
        db.add(db_user)
        db.flush()

        personal = models.FinancialGroup(
            name=settings.personal_group_name,
            description=settings.personal_group_description,
            type=models.GroupType.PERSONAL,
            owner_id=db_user.id,
        )
        personal.members.append(models.GroupMember(user_id=db_user.id))
        personal.categories.extend(models.GroupCategory(name=name) for name in DEFAULT_CATEGORIES)
        db.add(personal)

        db_user.categories.extend(models.UserCategory(name=name) for name in DEFAULT_CATEGORIES)

    db.refresh(db_user)
    logger.info("user_created", user_id=db_user.id, email=db_user.email)
    return db_user


# Groups
def get_group(db: Session, group_id: int):
    return db.query(models.FinancialGroup).filter(models.FinancialGroup.id == group_id).first()


def get_member_group(db: Session, group_id: int, user_id: int):
    """A group the user belongs to; unknown and foreign groups look the same."""
    return (
        db.query(models.FinancialGroup)
        .join(models.GroupMember, models.GroupMember.group_id == models.FinancialGroup.id)
        .filter(models.FinancialGroup.id == group_id, models.GroupMember.user_id == user_id)
        .first()
    )


def get_personal_group(db: Session, user_id: int):
    return (
        db.query(models.FinancialGroup)
        .filter(
            models.FinancialGroup.owner_id == user_id,
            models.FinancialGroup.type == models.GroupType.PERSONAL,
        )
        .first()
    )


def get_user_groups(db: Session, user_id: int):
    """Groups the user is a member of, followed by owned groups they are not a member of."""
    member_of = (
        db.query(models.FinancialGroup)
        .join(models.GroupMember, models.GroupMember.group_id == models.FinancialGroup.id)
        .filter(models.GroupMember.user_id == user_id)
        .order_by(models.FinancialGroup.id)
        .all()
    )
    owned = (
        db.query(models.FinancialGroup)
        .filter(models.FinancialGroup.owner_id == user_id)
        .order_by(models.FinancialGroup.id)
        .all()
    )
    seen = {g.id for g in member_of}
    return member_of + [g for g in owned if g.id not in seen]


def create_group(db: Session, group: schemas.GroupCreate, user_id: int):
    # the generic path only ever creates shared groups
    with atomic(db):
        db_group = models.FinancialGroup(
            name=group.name,
            description=group.description,
            type=models.GroupType.SHARED,
            owner_id=user_id,
        )
        db_group.members.append(models.GroupMember(user_id=user_id))
        db_group.categories.extend(models.GroupCategory(name=name) for name in DEFAULT_CATEGORIES)
        db.add(db_group)
    db.refresh(db_group)
    logger.info("group_created", group_id=db_group.id, owner_id=user_id)
    return db_group


# Members
def get_membership(db: Session, group_id: int, user_id: int):
    return (
        db.query(models.GroupMember)
        .filter(models.GroupMember.group_id == group_id, models.GroupMember.user_id == user_id)
        .first()
    )


def get_members(db: Session, group_id: int):
    return (
        db.query(models.GroupMember)
        .filter(models.GroupMember.group_id == group_id)
        .order_by(models.GroupMember.joined_at, models.GroupMember.id)
        .all()
    )


def add_member(db: Session, group: models.FinancialGroup, user_id: int):
    if get_user(db, user_id) is None:
        raise errors.NotFound("User not found")
    if get_membership(db, group.id, user_id):
        raise errors.Conflict("User is already a member of this group")

    with atomic(db):
        member = models.GroupMember(user_id=user_id, group_id=group.id)
        db.add(member)
    db.refresh(member)
    logger.info("member_added", group_id=group.id, user_id=user_id)
    return member


def remove_member(db: Session, group: models.FinancialGroup, user_id: int):
    if user_id == group.owner_id:
        raise errors.Conflict("The group owner cannot be removed")
    member = get_membership(db, group.id, user_id)
    if member is None:
        raise errors.NotFound("Member not found")

    with atomic(db):
        db.delete(member)
    logger.info("member_removed", group_id=group.id, user_id=user_id)


# Invitations
def get_invitation(db: Session, invitation_id: int):
    return db.query(models.GroupInvitation).filter(models.GroupInvitation.id == invitation_id).first()


def get_pending_invitations(db: Session, user_id: int):
    return (
        db.query(models.GroupInvitation)
        .filter(
            models.GroupInvitation.receiver_id == user_id,
            models.GroupInvitation.status == models.InvitationStatus.PENDING,
        )
        .order_by(models.GroupInvitation.created_at.desc(), models.GroupInvitation.id.desc())
        .all()
    )


def send_invitation(db: Session, group: models.FinancialGroup, email: str, sender_id: int):
    """
    Invite whoever owns ``email`` to ``group``.

    Returns the pending invitation, or None when there is nobody to invite
    (unknown email, or already a member). Callers answer both cases the same
    way so the existence of an account is not revealed.
    """
    receiver = get_user_by_email(db, email)
    if receiver is None or get_membership(db, group.id, receiver.id):
        return None

    existing = (
        db.query(models.GroupInvitation)
        .filter(
            models.GroupInvitation.receiver_id == receiver.id,
            models.GroupInvitation.group_id == group.id,
            models.GroupInvitation.status == models.InvitationStatus.PENDING,
        )
        .first()
    )
    if existing:
        return existing

    with atomic(db):
        invitation = models.GroupInvitation(sender_id=sender_id, receiver_id=receiver.id, group_id=group.id)
        db.add(invitation)
    db.refresh(invitation)
    logger.info("invitation_sent", invitation_id=invitation.id, group_id=group.id, sender_id=sender_id)
    return invitation


def respond_invitation(db: Session, invitation: models.GroupInvitation, status: models.InvitationStatus):
    if status == models.InvitationStatus.PENDING:
        raise errors.ValidationFailed(details={"status": ["Must be ACCEPTED or REJECTED"]})
    if invitation.status != models.InvitationStatus.PENDING:
        raise errors.Conflict("Invitation was already answered")

    with atomic(db):
        if status == models.InvitationStatus.ACCEPTED and not get_membership(
            db, invitation.group_id, invitation.receiver_id
        ):
            db.add(models.GroupMember(user_id=invitation.receiver_id, group_id=invitation.group_id))
        invitation.status = status
    db.refresh(invitation)
    logger.info("invitation_answered", invitation_id=invitation.id, status=status.value)
    return invitation


# Categories
def get_user_categories(db: Session, user_id: int):
    return (
        db.query(models.UserCategory)
        .filter(models.UserCategory.user_id == user_id)
        .order_by(models.UserCategory.name)
        .all()
    )


def create_user_category(db: Session, category: schemas.CategoryCreate, user_id: int):
    with atomic(db):
        db_category = models.UserCategory(name=category.name, user_id=user_id)
        db.add(db_category)
    db.refresh(db_category)
    return db_category


def get_group_categories(db: Session, group_id: int):
    return (
        db.query(models.GroupCategory)
        .filter(models.GroupCategory.group_id == group_id)
        .order_by(models.GroupCategory.name)
        .all()
    )


def create_group_category(db: Session, category: schemas.GroupCategoryCreate):
    existing = (
        db.query(models.GroupCategory)
        .filter(models.GroupCategory.group_id == category.group_id, models.GroupCategory.name == category.name)
        .first()
    )
    if existing:
        raise errors.Conflict("Category already exists in this group")

    with atomic(db):
        db_category = models.GroupCategory(name=category.name, group_id=category.group_id)
        db.add(db_category)
    db.refresh(db_category)
    return db_category


def resolve_category(db: Session, ref, user_id: int, group_id: int):
    """
    Turn a category reference into ``(user_category, group_category)``.

    User categories must belong to the acting user and group categories to
    the transaction's group; anything else is reported as not found.
    """
    if ref is None:
        return None, None

    if ref.scope == schemas.CategoryScope.USER:
        category = (
            db.query(models.UserCategory)
            .filter(models.UserCategory.id == ref.id, models.UserCategory.user_id == user_id)
            .first()
        )
        if category is None:
            raise errors.NotFound("Category not found")
        return category, None

    category = (
        db.query(models.GroupCategory)
        .filter(models.GroupCategory.id == ref.id, models.GroupCategory.group_id == group_id)
        .first()
    )
    if category is None:
        raise errors.NotFound("Category not found")
    return None, category


# Bank accounts
def get_bank_accounts(db: Session, user_id: int, active_only: bool = True):
    query = db.query(models.BankAccount).filter(models.BankAccount.user_id == user_id)
    if active_only:
        query = query.filter(models.BankAccount.is_active.is_(True))
    return query.order_by(models.BankAccount.id).all()


def get_bank_account(db: Session, account_id: int, user_id: int):
    return (
        db.query(models.BankAccount)
        .filter(models.BankAccount.id == account_id, models.BankAccount.user_id == user_id)
        .first()
    )


def create_bank_account(db: Session, account: schemas.BankAccountCreate, user_id: int):
    with atomic(db):
        db_account = models.BankAccount(**account.model_dump(), user_id=user_id)
        db.add(db_account)
    db.refresh(db_account)
    logger.info("bank_account_created", account_id=db_account.id, user_id=user_id)
    return db_account


def deactivate_bank_account(db: Session, account: models.BankAccount):
    with atomic(db):
        account.is_active = False
    db.refresh(account)
    logger.info("bank_account_deactivated", account_id=account.id)
    return account


# Transactions
def get_transaction(db: Session, transaction_id: int):
    return db.query(models.Transaction).filter(models.Transaction.id == transaction_id).first()


def get_transactions(db: Session, user_id: int, skip: int = 0, limit: int = 100):
    return (
        db.query(models.Transaction)
        .filter(models.Transaction.created_by_id == user_id)
        .order_by(models.Transaction.created_at.desc(), models.Transaction.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def get_group_transactions(db: Session, group_id: int):
    return (
        db.query(models.Transaction)
        .filter(models.Transaction.group_id == group_id)
        .order_by(models.Transaction.created_at.desc(), models.Transaction.id.desc())
        .all()
    )
