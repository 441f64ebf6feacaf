from typing import List

import structlog
from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from . import auth, balances, crud, errors, lifecycle, models, permissions, schemas
from .config import get_settings
from .database import get_db, init_db
from .logging_config import configure_logging

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)
logger = structlog.get_logger(__name__)

init_db()

app = FastAPI(title="ledger-api")

INVITATION_SENT = "Your invitation was sent; if a user with this email exists they will be notified."


# Error handling
@app.exception_handler(errors.LedgerError)
def ledger_error_handler(request: Request, exc: errors.LedgerError):
    content = {"error": exc.message}
    if exc.details is not None:
        content["details"] = jsonable_encoder(exc.details)
    return JSONResponse(status_code=errors.status_for(exc), content=content)


@app.exception_handler(RequestValidationError)
def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()]
    return JSONResponse(
        status_code=errors.status_for(errors.ValidationFailed()),
        content={"error": errors.ValidationFailed.message, "details": details},
    )


@app.exception_handler(Exception)
def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("unhandled_error", method=request.method, path=request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def load_group(db: Session, group_id: int) -> models.FinancialGroup:
    group = crud.get_group(db, group_id)
    if group is None:
        raise errors.NotFound("Group not found")
    return group


# Authentication
@app.post("/token", response_model=schemas.Token)
def login_for_access_token(db: Session = Depends(get_db), form_data: OAuth2PasswordRequestForm = Depends()):
    user = auth.authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise errors.Unauthorized("Incorrect email or password")
    access_token = auth.create_access_token(data={"sub": user.email})
    return {"access_token": access_token, "token_type": "bearer"}


# Users
@app.post("/users/", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
def create_user(user: schemas.UserCreate, db: Session = Depends(get_db)):
    hashed_password = auth.get_password_hash(user.password)
    return crud.create_user(db=db, user=user, hashed_password=hashed_password)


@app.get("/users/me", response_model=schemas.User)
def read_me(current_user: models.User = Depends(auth.get_current_user)):
    return current_user


# Transactions
@app.post("/transactions/", response_model=schemas.Transaction, status_code=status.HTTP_201_CREATED)
def create_transaction(
    transaction: schemas.TransactionCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    return lifecycle.create_transaction(db, transaction, user_id=current_user.id)


@app.get("/transactions/", response_model=List[schemas.Transaction])
def read_transactions(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    return crud.get_transactions(db, user_id=current_user.id, skip=skip, limit=limit)


@app.get("/transactions/{transaction_id}", response_model=schemas.Transaction)
def read_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    return lifecycle.get_transaction(db, transaction_id, user_id=current_user.id)


@app.put("/transactions/{transaction_id}", response_model=schemas.Transaction)
def update_transaction(
    transaction_id: int,
    transaction: schemas.TransactionUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    return lifecycle.update_transaction(db, transaction_id, user_id=current_user.id, data=transaction)


@app.patch("/transactions/{transaction_id}/category", response_model=schemas.Transaction)
def update_transaction_category(
    transaction_id: int,
    body: schemas.TransactionCategoryUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    return lifecycle.update_category(db, transaction_id, user_id=current_user.id, ref=body.category)


@app.delete("/transactions/{transaction_id}", response_model=schemas.Message)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    lifecycle.delete_transaction(db, transaction_id, user_id=current_user.id)
    return {"message": "Transaction deleted"}


@app.post("/transactions/{transaction_id}/pay", response_model=schemas.Transaction)
def pay_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    return lifecycle.mark_paid(db, transaction_id, user_id=current_user.id)


@app.delete("/transactions/{transaction_id}/pay", response_model=schemas.Transaction)
def unpay_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    return lifecycle.mark_pending(db, transaction_id, user_id=current_user.id)


# Groups
@app.post("/groups/", response_model=schemas.Group, status_code=status.HTTP_201_CREATED)
def create_group(
    group: schemas.GroupCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    return crud.create_group(db, group, user_id=current_user.id)


@app.get("/groups/", response_model=List[schemas.Group])
def read_groups(db: Session = Depends(get_db), current_user: models.User = Depends(auth.get_current_user)):
    return crud.get_user_groups(db, user_id=current_user.id)


@app.get("/groups/me", response_model=schemas.PersonalGroupBalance)
def read_personal_group(db: Session = Depends(get_db), current_user: models.User = Depends(auth.get_current_user)):
    group = crud.get_personal_group(db, user_id=current_user.id)
    if group is None:
        raise errors.NotFound("Personal group not found")

    accounts = crud.get_bank_accounts(db, user_id=current_user.id)
    result = balances.personal_group_balance(group, accounts)
    logger.info(
        "personal_balance_computed",
        group_id=group.id,
        cash=str(result.cash_balance),
        bank=str(result.bank_balance),
    )
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "balance": result.total,
        "breakdown": {"cash_balance": result.cash_balance, "bank_balance": result.bank_balance},
    }


@app.get("/groups/{group_id}", response_model=schemas.GroupDetail)
def read_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    group = load_group(db, group_id)
    permissions.require_group_member(group, current_user.id)
    return {
        "group": group,
        "members": crud.get_members(db, group.id),
        "transactions": crud.get_group_transactions(db, group.id),
    }


@app.get("/groups/{group_id}/members", response_model=List[schemas.Member])
def read_members(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    group = load_group(db, group_id)
    permissions.require_group_member(group, current_user.id)
    return crud.get_members(db, group.id)


@app.post("/groups/{group_id}/members", response_model=schemas.Member, status_code=status.HTTP_201_CREATED)
def add_member(
    group_id: int,
    member: schemas.MemberCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    group = load_group(db, group_id)
    permissions.require_group_owner(group, current_user.id)
    return crud.add_member(db, group, member.user_id)


@app.delete("/groups/{group_id}/members/{user_id}", response_model=schemas.Message)
def remove_member(
    group_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    group = load_group(db, group_id)
    permissions.require_group_owner(group, current_user.id)
    crud.remove_member(db, group, user_id)
    return {"message": "Member removed"}


# Invitations
@app.post("/invitations/", response_model=schemas.Message)
def send_invitation(
    invitation: schemas.InvitationCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    group = load_group(db, invitation.group_id)
    permissions.require_group_member(group, current_user.id)
    crud.send_invitation(db, group, invitation.email, sender_id=current_user.id)
    return {"message": INVITATION_SENT}


@app.get("/invitations/", response_model=List[schemas.Invitation])
def read_invitations(db: Session = Depends(get_db), current_user: models.User = Depends(auth.get_current_user)):
    return crud.get_pending_invitations(db, user_id=current_user.id)


@app.put("/invitations/{invitation_id}", response_model=schemas.Invitation)
def respond_invitation(
    invitation_id: int,
    response: schemas.InvitationResponse,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    invitation = crud.get_invitation(db, invitation_id)
    if invitation is None:
        raise errors.NotFound("Invitation not found")
    permissions.require_invitation_receiver(invitation, current_user.id)
    return crud.respond_invitation(db, invitation, response.status)


# Categories
@app.get("/categories/me", response_model=List[schemas.UserCategory])
def read_user_categories(db: Session = Depends(get_db), current_user: models.User = Depends(auth.get_current_user)):
    return crud.get_user_categories(db, user_id=current_user.id)


@app.post("/categories/me", response_model=schemas.UserCategory, status_code=status.HTTP_201_CREATED)
def create_user_category(
    category: schemas.CategoryCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    return crud.create_user_category(db, category, user_id=current_user.id)


@app.get("/categories/", response_model=List[schemas.GroupCategory])
def read_group_categories(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    group = load_group(db, group_id)
    permissions.require_group_member(group, current_user.id)
    return crud.get_group_categories(db, group.id)


@app.post("/categories/", response_model=schemas.GroupCategory, status_code=status.HTTP_201_CREATED)
def create_group_category(
    category: schemas.GroupCategoryCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    group = load_group(db, category.group_id)
    permissions.require_group_member(group, current_user.id)
    return crud.create_group_category(db, category)


# Bank accounts
@app.post("/bank-accounts/", response_model=schemas.BankAccount, status_code=status.HTTP_201_CREATED)
def create_bank_account(
    account: schemas.BankAccountCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    return crud.create_bank_account(db, account, user_id=current_user.id)


@app.get("/bank-accounts/", response_model=List[schemas.BankAccount])
def read_bank_accounts(db: Session = Depends(get_db), current_user: models.User = Depends(auth.get_current_user)):
    return crud.get_bank_accounts(db, user_id=current_user.id)


@app.delete("/bank-accounts/{account_id}", response_model=schemas.BankAccount)
def deactivate_bank_account(
    account_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    account = crud.get_bank_account(db, account_id, user_id=current_user.id)
    if account is None:
        raise errors.NotFound("Bank account not found")
    return crud.deactivate_bank_account(db, account)


# Reports
@app.get("/balance", response_model=schemas.ConsolidatedBalance)
def read_balance(db: Session = Depends(get_db), current_user: models.User = Depends(auth.get_current_user)):
    groups = crud.get_user_groups(db, user_id=current_user.id)
    accounts = crud.get_bank_accounts(db, user_id=current_user.id)
    return balances.consolidated_balance(groups, accounts)
