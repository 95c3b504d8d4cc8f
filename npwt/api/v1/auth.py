# npwt/api/v1/auth.py
from datetime import datetime
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from npwt.api.deps import get_current_active_user
from npwt.core.security import create_access_token, verify_password
from npwt.db.session import get_db
from npwt.models.user import User
from npwt.schemas.auth import LoginRequest, Token, UserInDB

router = APIRouter(prefix="/auth", tags=["Auth"])
logger = logging.getLogger(__name__)


@router.post("/login", response_model=Token)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    """Connexion utilisateur"""
    email = data.email.strip().lower()
    user = db.query(User).filter(User.email == email).first()

    if not user or not verify_password(data.password, user.hashed_password):
        logger.warning(f"Échec de connexion pour: {email}")
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Identifiants invalides")

    if not user.is_active:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Compte désactivé")

    user.last_login = datetime.utcnow()
    db.commit()

    role = user.effective_role
    token = create_access_token({
        "sub": str(user.id),
        "email": user.email,
        "role": role.value if role else user.role,
    })
    logger.info(f"Connexion: {user.email} ({user.role})")

    return {"access_token": token, "token_type": "bearer", "user": user}


@router.get("/me", response_model=UserInDB)
def read_me(current_user: User = Depends(get_current_active_user)):
    return current_user
