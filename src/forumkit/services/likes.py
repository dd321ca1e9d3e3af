"""Post likes: find-or-create on like, delete-all on unlike."""

from __future__ import annotations

import sqlalchemy as sa

from forumkit.db import Post, PostLike, utcnow
from forumkit.models import PostLike as PostLikeEntity
from forumkit.services.base import BaseService


class PostLikeService(BaseService):
    @staticmethod
    def _likes_of(post_id: int, viewer_id: int) -> sa.ColumnElement[bool]:
        return sa.and_(PostLike.post_id == post_id, PostLike.liker_id == viewer_id)

    def like_post(self, viewer_id: int, post_id: int) -> PostLikeEntity | None:
        """Return the viewer's like on the post, creating it if needed. None if the post does not exist."""
        with self.engine.begin() as conn:
            existing = conn.execute(
                sa.select(*PostLike.__table__.c)
                .where(self._likes_of(post_id, viewer_id))
                .order_by(PostLike.id.asc())
                .limit(1)
            ).first()
            if existing is not None:
                return PostLikeEntity.from_row(existing)

            if self._live_row(conn, Post, post_id) is None:
                return None
            like_id = self._insert(conn, PostLike, {"post_id": post_id, "liker_id": viewer_id, "liked_on": utcnow()})
            row = conn.execute(sa.select(*PostLike.__table__.c).where(PostLike.id == like_id)).one()

        self._invalidate(Post, PostLike)
        self.log.info("likes.created", post_id=post_id, liker_id=viewer_id)
        return PostLikeEntity.from_row(row)

    def unlike_post(self, viewer_id: int, post_id: int) -> int:
        """Delete every like by the viewer on the post. Returns how many were removed."""
        with self.engine.begin() as conn:
            removed = conn.execute(sa.delete(PostLike).where(self._likes_of(post_id, viewer_id))).rowcount

        if removed:
            self._invalidate(Post, PostLike)
            self.log.info("likes.removed", post_id=post_id, liker_id=viewer_id, count=removed)
        return removed
