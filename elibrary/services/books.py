import asyncio
import logging
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from elibrary import models
from elibrary.exceptions import AuthorizationError, DependencyError, NotFoundError, ValidationError
from elibrary.storage import (
    COVER_FOLDER,
    FILE_FOLDER,
    IMAGE,
    RAW,
    AssetStoreError,
    CloudinaryStore,
    public_id_from_url,
)
from elibrary.uploads import BookUploads, StagedFile

logger = logging.getLogger(__name__)

FOLDERS = {IMAGE: COVER_FOLDER, RAW: FILE_FOLDER}


async def _upload_asset(store: CloudinaryStore, staged: StagedFile, resource_type: str) -> str:
    return await store.upload(
        staged.path,
        folder=FOLDERS[resource_type],
        resource_type=resource_type,
        fmt=staged.subtype,
        filename=staged.filename,
    )


async def _destroy_quietly(store: CloudinaryStore, assets: Iterable[tuple[str, str]]) -> None:
    assets = list(assets)

    async def destroy(url: str, resource_type: str) -> None:
        try:
            await store.destroy(public_id_from_url(url, resource_type), resource_type=resource_type)
        except AssetStoreError as exc:
            logger.error(f"Error deleting {resource_type} object {url}: {exc}")

    await asyncio.gather(*(destroy(url, resource_type) for url, resource_type in assets))


def _get_owned_book(db: Session, book_id: str, user_id: str) -> models.Book:
    try:
        book = db.get(models.Book, book_id)
    except SQLAlchemyError as exc:
        logger.error(f"Error loading book {book_id}: {exc}")
        raise DependencyError("Error while getting the book") from exc

    if not book:
        raise NotFoundError("Book not found")
    if book.author_id != user_id:
        raise AuthorizationError("You can not modify someone else's book")
    return book


async def create_book(
    db: Session,
    store: CloudinaryStore,
    *,
    user_id: str,
    title: str,
    genre: str,
    description: Optional[str] = None,
    uploads: BookUploads,
) -> models.Book:
    uploads.require_all()
    if not title or not genre:
        raise ValidationError("Title and genre are required")

    uploaded: list[tuple[str, str]] = []
    try:
        cover_url = await _upload_asset(store, uploads.cover_image, IMAGE)
        uploaded.append((cover_url, IMAGE))
        file_url = await _upload_asset(store, uploads.file, RAW)
        uploaded.append((file_url, RAW))

        new_book = models.Book(
            title=title,
            description=description,
            genre=genre,
            author_id=user_id,
            cover_image=cover_url,
            file=file_url,
        )
        db.add(new_book)
        db.commit()
        db.refresh(new_book)
    except (AssetStoreError, SQLAlchemyError, OSError) as exc:
        db.rollback()
        logger.error(f"Error while creating book for user {user_id}: {exc}")
        await _destroy_quietly(store, uploaded)
        raise DependencyError("Error while uploading the files") from exc

    logger.info(f"User {user_id} created book {new_book.id}")
    return new_book


async def update_book(
    db: Session,
    store: CloudinaryStore,
    *,
    book_id: str,
    user_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    genre: Optional[str] = None,
    uploads: BookUploads = BookUploads(),
) -> models.Book:
    book = _get_owned_book(db, book_id, user_id)

    changes = {
        field: value
        for field, value in (("title", title), ("description", description), ("genre", genre))
        if value is not None
    }

    pending: list[tuple[str, str]] = []
    replacements = (
        ("cover_image", uploads.cover_image, IMAGE, "Error uploading new cover image"),
        ("file", uploads.file, RAW, "Error uploading new book file"),
    )
    try:
        for field, staged, resource_type, failure in replacements:
            if staged is None:
                continue
            try:
                changes[field] = await _upload_asset(store, staged, resource_type)
            except (AssetStoreError, OSError) as exc:
                logger.error(f"{failure} for book {book_id}: {exc}")
                raise DependencyError(failure) from exc
            pending.append((changes[field], resource_type))

        superseded = [
            (getattr(book, field), resource_type)
            for field, _, resource_type, _ in replacements
            if field in changes
        ]
        for field, value in changes.items():
            setattr(book, field, value)
        try:
            db.commit()
            db.refresh(book)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(f"Error while updating book {book_id}: {exc}")
            raise DependencyError("Error while updating the book") from exc
    except DependencyError:
        await _destroy_quietly(store, pending)
        raise

    await _destroy_quietly(store, superseded)
    return book


def list_books(db: Session) -> list[models.Book]:
    try:
        return (
            db.query(models.Book)
            .options(joinedload(models.Book.author))
            .order_by(models.Book.created_at)
            .all()
        )
    except SQLAlchemyError as exc:
        logger.error(f"Error listing books: {exc}")
        raise DependencyError("Error while getting all books") from exc


def get_book(db: Session, book_id: Optional[str]) -> models.Book:
    if not book_id:
        raise ValidationError("Book ID is required")

    try:
        book = (
            db.query(models.Book)
            .options(joinedload(models.Book.author))
            .filter(models.Book.id == book_id)
            .first()
        )
    except SQLAlchemyError as exc:
        logger.error(f"Error loading book {book_id}: {exc}")
        raise DependencyError("Error while getting the book") from exc

    if not book:
        raise NotFoundError("Book not found")
    return book


async def delete_book(db: Session, store: CloudinaryStore, *, book_id: Optional[str], user_id: str) -> None:
    if not book_id:
        raise ValidationError("Book ID is required")

    book = _get_owned_book(db, book_id, user_id)

    try:
        cover_id = public_id_from_url(book.cover_image, IMAGE)
        file_id = public_id_from_url(book.file, RAW)
    except AssetStoreError as exc:
        logger.error(f"Book {book_id} has unusable asset URLs: {exc}")
        raise DependencyError("Error while deleting the book") from exc

    results = await asyncio.gather(
        store.destroy(cover_id, resource_type=IMAGE),
        store.destroy(file_id, resource_type=RAW),
        return_exceptions=True,
    )
    failures = [result for result in results if isinstance(result, Exception)]
    for failure in failures:
        logger.error(f"Error deleting assets of book {book_id}: {failure}")
    if failures:
        raise DependencyError("Error while deleting the book") from failures[0]

    try:
        db.delete(book)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Error deleting book {book_id}: {exc}")
        raise DependencyError("Error while deleting the book") from exc

    logger.info(f"User {user_id} deleted book {book_id}")
