from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from elibrary import schemas
from elibrary.database import get_db
from elibrary.services import users as user_service

router = APIRouter(prefix="/users", tags=["Users"])


# Register
@router.post("/register", response_model=schemas.TokenResponse, status_code=status.HTTP_201_CREATED)
def register(user: schemas.UserCreate, db: Session = Depends(get_db)):
    token = user_service.register_user(db, user.name, user.email, user.password)
    return {"access_token": token}


# Login
@router.post("/login", response_model=schemas.TokenResponse)
def login(user: schemas.UserLogin, db: Session = Depends(get_db)):
    token = user_service.login_user(db, user.email, user.password)
    return {"access_token": token}
