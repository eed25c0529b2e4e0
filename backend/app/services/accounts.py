from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException
from pydantic import ValidationError

from ..auth_utils import generate_token, hash_password, verify_password
from ..persistence import KVStore, user_key
from ..schemas import (
    FriendView,
    LeaderboardEntry,
    LoginRequest,
    SignupRequest,
    UserProfileUpdate,
    UserRecord,
    UserSearchResult,
    level_for,
)
from ..store import InMemoryStore

logger = logging.getLogger(__name__)

LEADERBOARD_SIZE = 50
SEARCH_LIMIT = 20
SEARCH_MIN_QUERY = 2


class UserService:
    def __init__(self, kv: KVStore) -> None:
        self.kv = kv

    def get_user(self, email: str) -> UserRecord | None:
        raw = self.kv.get(user_key(email))
        if not isinstance(raw, dict):
            return None
        raw.setdefault("email", email)
        return UserRecord.model_validate(raw)

    def save_user(self, user: UserRecord) -> None:
        self.kv.set(user_key(user.email), user.model_dump(exclude_none=True))

    def _all_users(self) -> list[UserRecord]:
        users: list[UserRecord] = []
        for raw in self.kv.get_by_prefix("user:"):
            if not isinstance(raw, dict) or not raw.get("email"):
                continue
            try:
                users.append(UserRecord.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping invalid user record %s: %s", raw.get("email"), exc)
        return users

    def signup(self, payload: SignupRequest) -> tuple[UserRecord, str]:
        if self.kv.get(user_key(payload.email)) is not None:
            logger.info("Signup rejected, user exists: %s", payload.email)
            raise HTTPException(status_code=400, detail="User with this email already exists")
        user = UserRecord(
            email=payload.email,
            name=payload.name,
            createdAt=InMemoryStore.now_iso(),
            passwordHash=hash_password(payload.password),
            isOnboarded=False,
        )
        self.save_user(user)
        logger.info("User created: %s", user.email)
        return user, generate_token(user.email)

    def login(self, payload: LoginRequest) -> tuple[UserRecord, str]:
        user = self.get_user(payload.email)
        if user is None:
            logger.info("Login failed, unknown user: %s", payload.email)
            raise HTTPException(status_code=401, detail="User not found")
        if not verify_password(payload.password, user.passwordHash):
            logger.info("Login failed, password mismatch: %s", payload.email)
            raise HTTPException(status_code=401, detail="Incorrect password")
        return user, generate_token(user.email)

    def update_profile(self, email: str, payload: UserProfileUpdate) -> UserRecord:
        current = self.get_user(email)
        merged: dict[str, Any] = current.model_dump(exclude_none=True) if current else {"email": email}
        merged.update(payload.model_dump(exclude_unset=True))
        merged["updatedAt"] = InMemoryStore.now_iso()
        user = UserRecord.model_validate(merged)
        self.save_user(user)
        logger.info("Profile updated for %s (fields: %s)", email, sorted(payload.model_fields_set))
        return user

    def add_xp(self, email: str, xp_earned: int) -> int:
        user = self.get_user(email) or UserRecord(email=email)
        user.xpLevel = user.xpLevel + xp_earned
        user.lastMissionDate = InMemoryStore.now_iso()
        self.save_user(user)
        return user.xpLevel

    def apply_balances(self, email: str, savings: float, net_worth: float) -> None:
        user = self.get_user(email) or UserRecord(email=email)
        user.currentSavings = savings
        user.currentNetWorth = net_worth
        self.save_user(user)

    def leaderboard(self, email: str) -> list[LeaderboardEntry]:
        ranked = sorted(
            (u for u in self._all_users() if u.isOnboarded),
            key=lambda u: u.xpLevel,
            reverse=True,
        )[:LEADERBOARD_SIZE]
        return [
            LeaderboardEntry(
                name=u.name or "Unknown",
                email=u.email,
                xp=u.xpLevel,
                level=level_for(u.xpLevel),
                streak=u.streak,
                rank=index + 1,
                isCurrentUser=u.email == email,
            )
            for index, u in enumerate(ranked)
        ]

    def search(self, email: str, query: str) -> list[UserSearchResult]:
        if len(query) < SEARCH_MIN_QUERY:
            return []
        needle = query.lower()
        matches = [
            u
            for u in self._all_users()
            if u.isOnboarded
            and u.email != email
            and (needle in (u.name or "").lower() or needle in u.email.lower())
        ]
        return [
            UserSearchResult(name=u.name or "Unknown", email=u.email, xp=u.xpLevel, level=level_for(u.xpLevel))
            for u in matches[:SEARCH_LIMIT]
        ]

    def add_friend(self, email: str, friend_email: str) -> FriendView:
        if friend_email == email:
            raise HTTPException(status_code=400, detail="You cannot add yourself as a friend")
        friend = self.get_user(friend_email)
        if friend is None:
            raise HTTPException(status_code=404, detail="User not found")

        user = self.get_user(email) or UserRecord(email=email)
        if friend_email in user.friends:
            raise HTTPException(status_code=400, detail="Already friends with this user")
        user.friends.append(friend_email)
        self.save_user(user)

        if email not in friend.friends:
            friend.friends.append(email)
            self.save_user(friend)
        logger.info("Friendship created: %s <-> %s", email, friend_email)
        return FriendView(name=friend.name, email=friend.email, xp=friend.xpLevel, level=level_for(friend.xpLevel))

    def list_friends(self, email: str) -> list[FriendView]:
        user = self.get_user(email)
        if user is None:
            return []
        friends: list[FriendView] = []
        for friend_email in user.friends:
            friend = self.get_user(friend_email)
            if friend is None:
                continue
            friends.append(
                FriendView(
                    name=friend.name,
                    email=friend.email,
                    xp=friend.xpLevel,
                    level=level_for(friend.xpLevel),
                    streak=friend.streak,
                )
            )
        return friends
