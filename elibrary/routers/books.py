from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status
from sqlalchemy.orm import Session

from elibrary import auth, schemas
from elibrary.config import Settings, get_settings
from elibrary.database import get_db
from elibrary.services import books as book_service
from elibrary.storage import CloudinaryStore, get_asset_store
from elibrary.uploads import staged_book_uploads

router = APIRouter(prefix="/books", tags=["Books"])


# Create Book
@router.post("", response_model=schemas.BookCreated, status_code=status.HTTP_201_CREATED)
async def create_book(
    title: str = Form(...),
    genre: str = Form(...),
    description: Optional[str] = Form(None),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    store: CloudinaryStore = Depends(get_asset_store),
    config: Settings = Depends(get_settings),
    user_id: str = Depends(auth.get_current_user_id),
):
    async with staged_book_uploads(cover_image, file, config.UPLOAD_DIR, config.MAX_UPLOAD_BYTES) as uploads:
        new_book = await book_service.create_book(
            db,
            store,
            user_id=user_id,
            title=title,
            description=description,
            genre=genre,
            uploads=uploads,
        )
    return {"id": new_book.id}


# Update Book
@router.put("/{book_id}", response_model=schemas.BookOut)
async def update_book(
    book_id: str,
    title: Optional[str] = Form(None),
    genre: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    store: CloudinaryStore = Depends(get_asset_store),
    config: Settings = Depends(get_settings),
    user_id: str = Depends(auth.get_current_user_id),
):
    async with staged_book_uploads(cover_image, file, config.UPLOAD_DIR, config.MAX_UPLOAD_BYTES) as uploads:
        return await book_service.update_book(
            db,
            store,
            book_id=book_id,
            user_id=user_id,
            title=title,
            description=description,
            genre=genre,
            uploads=uploads,
        )


# List Books
@router.get("", response_model=list[schemas.BookOut])
def list_books(db: Session = Depends(get_db)):
    return book_service.list_books(db)


# Get Book
@router.get("/{book_id}", response_model=schemas.BookOut)
def get_book(book_id: str, db: Session = Depends(get_db)):
    return book_service.get_book(db, book_id)


# Delete Book
@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(
    book_id: str,
    db: Session = Depends(get_db),
    store: CloudinaryStore = Depends(get_asset_store),
    user_id: str = Depends(auth.get_current_user_id),
):
    await book_service.delete_book(db, store, book_id=book_id, user_id=user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
