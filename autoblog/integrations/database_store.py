"""
Database-backed content store - posts live in the posts table.
"""
import logging
import uuid
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from autoblog.integrations.base import ContentStore
from autoblog.models.post import Post
from autoblog.utils.errors import PersistenceError

logger = logging.getLogger(__name__)


def _post_id(content_ref: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(content_ref))
    except ValueError:
        raise PersistenceError(f"Invalid content reference: {content_ref}") from None


def _serialize(post: Post) -> dict:
    return {
        "id": str(post.id),
        "title": post.title,
        "body": post.body,
        "status": post.status,
        "tags": post.tags or [],
        "meta": post.meta or {},
        "featured_image_id": str(post.featured_image_id) if post.featured_image_id else None,
    }


class DatabaseContentStore(ContentStore):
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def _get_post(self, db, content_ref: str) -> Post:
        post = await db.get(Post, _post_id(content_ref))
        if post is None:
            raise PersistenceError(f"Post {content_ref} not found")
        return post

    async def create(
        self,
        title: str,
        body: str,
        status: str,
        author_id: Optional[int] = None,
        category_id: Optional[int] = None,
        metadata: Optional[dict] = None,
        tags: Optional[list[str]] = None,
    ) -> str:
        post = Post(
            title=title[:500],
            body=body,
            status=status,
            author_id=author_id,
            category_id=category_id,
            meta=dict(metadata or {}),
            tags=list(tags or []),
        )
        async with self._session_factory() as db:
            db.add(post)
            await db.commit()
        logger.info("Post created: id=%s status=%s", str(post.id)[:8], status)
        return str(post.id)

    async def update_meta(self, content_ref: str, meta: dict) -> None:
        async with self._session_factory() as db:
            post = await self._get_post(db, content_ref)
            # Reassign so the JSON column is flagged dirty
            post.meta = {**(post.meta or {}), **meta}
            await db.commit()

    async def set_tags(self, content_ref: str, tags: list[str]) -> None:
        async with self._session_factory() as db:
            post = await self._get_post(db, content_ref)
            post.tags = list(tags)
            await db.commit()

    async def set_featured_image(self, content_ref: str, asset_ref: str) -> None:
        async with self._session_factory() as db:
            post = await self._get_post(db, content_ref)
            post.featured_image_id = uuid.UUID(str(asset_ref))
            await db.commit()

    async def delete(self, content_ref: str) -> None:
        async with self._session_factory() as db:
            await db.execute(delete(Post).where(Post.id == _post_id(content_ref)))
            await db.commit()
        logger.info("Post deleted: id=%s", str(content_ref)[:8])

    async def get(self, content_ref: str) -> Optional[dict]:
        async with self._session_factory() as db:
            post = await db.get(Post, _post_id(content_ref))
            return _serialize(post) if post is not None else None

    async def recent(self, status: str = "publish", limit: int = 10) -> list[dict]:
        async with self._session_factory() as db:
            rows = (await db.execute(
                select(Post)
                .where(Post.status == status)
                .order_by(Post.created_at.desc())
                .limit(limit)
            )).scalars().all()
        return [_serialize(post) for post in rows]
