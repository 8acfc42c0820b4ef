import logging
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ..config import ACCESS_TOKEN_EXPIRE_MINUTES, SECRET_KEY
from ..database import get_db
from ..models import User
from ..schemas.user import AuthResponse, TokenData, User as UserSchema, UserCreate, UserCredentials

logger = logging.getLogger(__name__)

router = APIRouter()

ALGORITHM = "HS256"
TOKEN_COOKIE = "token"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    password_bytes = plain_password.encode("utf-8")[:72]
    hashed_bytes = hashed_password.encode("utf-8") if isinstance(hashed_password, str) else hashed_password
    return bcrypt.checkpw(password_bytes, hashed_bytes)


def get_password_hash(password: str) -> str:
    password_bytes = password.encode("utf-8")[:72]  # bcrypt limit
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt()).decode("utf-8")


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def _get_token_from_request(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header.split(" ", 1)[1].strip()
    return request.cookies.get(TOKEN_COOKIE)


def _decode_token(token: str) -> Optional[TokenData]:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    email = payload.get("sub")
    if not email:
        return None
    return TokenData(email=email)


def _issue_session(response: Response, user: User) -> dict:
    access_token = create_access_token(data={"sub": user.email})
    response.set_cookie(
        key=TOKEN_COOKIE,
        value=access_token,
        httponly=True,
        secure=False,  # Set to True in production with HTTPS
        samesite="lax",
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return {"access_token": access_token, "token_type": "bearer", "user": user}


async def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """Resolve the authenticated user from a bearer token or session cookie."""
    token = _get_token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = _decode_token(token)
    if not token_data or not token_data.email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.email == token_data.email).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


@router.post("/signup", response_model=AuthResponse)
def signup(user: UserCreate, response: Response, db: Session = Depends(get_db)):
    """Create an account and start a session."""
    if db.query(User).filter(User.email == user.email).first():
        raise HTTPException(status_code=400, detail="Email already registered")

    db_user = User(email=user.email, hashed_password=get_password_hash(user.password))
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info("Registered user %s", db_user.id)
    return _issue_session(response, db_user)


@router.post("/signin", response_model=AuthResponse)
def signin(user: UserCredentials, response: Response, db: Session = Depends(get_db)):
    db_user = authenticate_user(db, user.email, user.password)
    if not db_user:
        logger.info("Failed sign-in attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )
    return _issue_session(response, db_user)


@router.post("/signout")
async def signout(response: Response):
    response.delete_cookie(key=TOKEN_COOKIE)
    return {"success": True}


@router.get("/session")
async def get_session(request: Request, db: Session = Depends(get_db)):
    """Current session, or nulls when the caller is anonymous."""
    token = _get_token_from_request(request)
    token_data = _decode_token(token) if token else None
    if not token_data or not token_data.email:
        return {"session": None, "user": None}

    user = db.query(User).filter(User.email == token_data.email).first()
    if not user:
        return {"session": None, "user": None}

    payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    return {
        "session": {
            "id": token,
            "expiresAt": datetime.utcfromtimestamp(payload.get("exp")).isoformat(),
            "userId": str(user.id),
        },
        "user": {
            "id": str(user.id),
            "email": user.email,
            "createdAt": user.created_at.isoformat(),
            "updatedAt": user.updated_at.isoformat(),
        },
    }


@router.get("/me", response_model=UserSchema)
def read_users_me(current_user: User = Depends(get_current_user)):
    return current_user
