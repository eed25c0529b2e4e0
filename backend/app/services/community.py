from __future__ import annotations

import logging

from pydantic import ValidationError

from ..persistence import KVStore, post_key
from ..schemas import Post, PostCreate
from ..store import InMemoryStore, parse_timestamp
from .accounts import UserService

logger = logging.getLogger(__name__)


class CommunityService:
    def __init__(self, kv: KVStore, users: UserService) -> None:
        self.kv = kv
        self.users = users

    def list_posts(self) -> list[Post]:
        posts: list[Post] = []
        for raw in self.kv.get_by_prefix("post:"):
            if not isinstance(raw, dict):
                continue
            try:
                posts.append(Post.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping invalid post %s: %s", raw.get("id"), exc)
        return sorted(posts, key=lambda p: parse_timestamp(p.createdAt), reverse=True)

    def create_post(self, email: str, payload: PostCreate) -> Post:
        user = self.users.get_user(email)
        post_id = f"post_{InMemoryStore.now_ms()}_{email}"
        post = Post(
            id=post_id,
            userId=email,
            userName=(user.name if user and user.name else "Agent"),
            content=payload.content,
            type=payload.type or "achievement",
            createdAt=InMemoryStore.now_iso(),
        )
        self.kv.set(post_key(post_id), post.model_dump(exclude_none=True))
        return post
