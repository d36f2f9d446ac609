from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.audit import log_audit
from app.db import get_db
from app.errors import ApiError, bad_request
from app.models import AuditActorType
from app.schemas import AuthResponse, LoginRequest, SignupRequest
from app.security import (
    create_access_token,
    ensure_login_attempt_allowed,
    register_login_failure,
    register_login_success,
)
from app.services.accounts import ensure_employee_code_available, normalize_employee_code, validate_password
from app.services.identity import IdentityError, authenticate, register_account

router = APIRouter(tags=["auth"])


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


@router.post("/api/auth/signup", response_model=AuthResponse)
def signup(
    payload: SignupRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> AuthResponse:
    validate_password(payload.password)
    employee_code = normalize_employee_code(payload.employee_id)
    if employee_code is not None:
        ensure_employee_code_available(db, employee_code)

    try:
        account = register_account(
            db,
            email=payload.email,
            password=payload.password,
            metadata={
                "first_name": payload.first_name,
                "last_name": payload.last_name,
                "employee_id": employee_code,
            },
        )
        db.commit()
    except IdentityError as exc:
        db.rollback()
        raise bad_request(str(exc)) from exc
    except IntegrityError as exc:
        db.rollback()
        raise bad_request("Email or Employee ID already registered") from exc

    request.state.actor = "user"
    request.state.actor_id = str(account.id)
    log_audit(
        db,
        actor_type=AuditActorType.USER,
        actor_id=str(account.id),
        action="ACCOUNT_SIGNUP",
        success=True,
        entity_type="account",
        entity_id=str(account.id),
        ip=_client_ip(request),
        user_agent=_user_agent(request),
        request_id=getattr(request.state, "request_id", None),
    )
    token, expires_in = create_access_token(account_id=account.id, email=account.email)
    return AuthResponse(access_token=token, expires_in=expires_in)


@router.post("/api/auth/login", response_model=AuthResponse)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> AuthResponse:
    email = payload.email.strip().lower()
    ip = _client_ip(request)
    user_agent = _user_agent(request)
    request_id = getattr(request.state, "request_id", None)

    if ip:
        try:
            ensure_login_attempt_allowed(ip)
        except ApiError:
            log_audit(
                db,
                actor_type=AuditActorType.SYSTEM,
                actor_id=email or "unknown",
                action="LOGIN_FAIL",
                success=False,
                ip=ip,
                user_agent=user_agent,
                details={"reason": "TOO_MANY_ATTEMPTS"},
                request_id=request_id,
            )
            raise

    account = authenticate(db, email=email, password=payload.password)
    if account is None:
        if ip:
            register_login_failure(ip)
        log_audit(
            db,
            actor_type=AuditActorType.SYSTEM,
            actor_id=email or "unknown",
            action="LOGIN_FAIL",
            success=False,
            ip=ip,
            user_agent=user_agent,
            details={"reason": "INVALID_CREDENTIALS"},
            request_id=request_id,
        )
        raise ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid login credentials")

    if ip:
        register_login_success(ip)
    request.state.actor = "user"
    request.state.actor_id = str(account.id)
    log_audit(
        db,
        actor_type=AuditActorType.USER,
        actor_id=str(account.id),
        action="LOGIN_SUCCESS",
        success=True,
        ip=ip,
        user_agent=user_agent,
        request_id=request_id,
    )
    token, expires_in = create_access_token(account_id=account.id, email=account.email)
    return AuthResponse(access_token=token, expires_in=expires_in)
