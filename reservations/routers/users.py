from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import schemas, models
from ..deps import (
    get_db,
    get_password_hash,
    authenticate_user,
    create_access_token,
    get_current_user,
)

router = APIRouter(prefix="/users", tags=["users"])

ROLES = ("admin", "director", "guest")


@router.post("/register", response_model=schemas.UserOut)
def register_user(user_in: schemas.UserCreate, db: Session = Depends(get_db)):
    """
    Register a new user.

    Creates an account with one of the roles ``admin``, ``director`` or
    ``guest``. Username and email must be unique.

    Raises
    ------
    HTTPException
        - 400 if the username or email already exists or the role is unknown.
    """
    if user_in.role not in ROLES:
        raise HTTPException(status_code=400, detail=f"Unknown role: {user_in.role}")

    existing = db.query(models.User).filter(
        (models.User.username == user_in.username) | (models.User.email == user_in.email)
    ).first()
    if existing:
        raise HTTPException(status_code=400, detail="Username or email already exists")

    user = models.User(
        name=user_in.name,
        username=user_in.username,
        email=user_in.email,
        hashed_password=get_password_hash(user_in.password),
        role=user_in.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.post("/login", response_model=schemas.Token, tags=["auth"])
def login_for_access_token(
    username: str,
    password: str,
    db: Session = Depends(get_db),
):
    """
    Authenticate a user and return a JWT access token.

    Raises
    ------
    HTTPException
        - 401 if credentials are invalid.
    """
    user = authenticate_user(db, username, password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
        )
    token = create_access_token({"sub": user.username, "role": user.role})
    return {"access_token": token, "token_type": "bearer"}


@router.get("/me", response_model=schemas.UserOut)
def read_current_user(current_user: models.User = Depends(get_current_user)):
    """Profile of the user associated with the Bearer token."""
    return current_user
