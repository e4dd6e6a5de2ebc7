"""
Market Service - Identity Store

登録済み Actor を保持し、セッショントークンを発行・検証する。

- (display_name, role) の組が一意キー
- ログインのたびにトークンをローテーションする (旧トークンは即無効)
- 書き込み (register / authenticate) は 1 本のロックで直列化する
- 永続化してからメモリに反映する (失敗時はどちらも変わらない)
"""

import asyncio
import logging

from .errors import DuplicateActor, InvalidInput, NotFound, Unauthenticated
from .models import Actor, Role, new_id, new_token
from .store import ACTORS, Store
from .tasks import run_to_completion

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"


def parse_role(role) -> Role:
    try:
        return Role(role)
    except ValueError:
        raise InvalidInput(f"Unknown role: {role!r}") from None


def _clean_name(display_name) -> str:
    if not isinstance(display_name, str) or not display_name.strip():
        raise InvalidInput("Name must be a non-empty string")
    return display_name.strip()


class IdentityStore:
    def __init__(self, store: Store) -> None:
        self._store = store
        self._lock = asyncio.Lock()
        self._actors: dict[str, Actor] = {}
        self._by_key: dict[tuple[str, Role], str] = {}
        self._by_token: dict[str, str] = {}

    async def load(self) -> None:
        self._actors.clear()
        self._by_key.clear()
        self._by_token.clear()
        for row in await self._store.load_all(ACTORS):
            self._index(Actor.model_validate(row))
        logger.info("Loaded %d actors", len(self._actors))

    def _index(self, actor: Actor) -> None:
        previous = self._actors.get(actor.id)
        if previous is not None and previous.token:
            self._by_token.pop(previous.token, None)
        self._actors[actor.id] = actor
        self._by_key[(actor.display_name, actor.role)] = actor.id
        if actor.token:
            self._by_token[actor.token] = actor.id

    async def register(self, display_name, role) -> Actor:
        name = _clean_name(display_name)
        role = parse_role(role)
        return await run_to_completion(
            self._commit_register(name, role), f"register {role.value} {name!r}"
        )

    async def _commit_register(self, name: str, role: Role) -> Actor:
        async with self._lock:
            if (name, role) in self._by_key:
                raise DuplicateActor(
                    f"User already exists with name {name!r} and role {role.value!r}"
                )
            actor = Actor(id=new_id(), display_name=name, role=role, token=new_token())
            await self._store.append(ACTORS, actor.model_dump(mode="json"))
            self._index(actor)
        logger.info("Registered %s %s (%s)", role.value, name, actor.id)
        return actor

    async def authenticate(self, display_name, role) -> Actor:
        """(name, role) 完全一致で検索し、トークンをローテーションして返す。"""
        name = _clean_name(display_name)
        role = parse_role(role)
        return await run_to_completion(
            self._commit_authenticate(name, role), f"login {role.value} {name!r}"
        )

    async def _commit_authenticate(self, name: str, role: Role) -> Actor:
        async with self._lock:
            actor_id = self._by_key.get((name, role))
            if actor_id is None:
                raise NotFound("User not found, please register")
            rotated = self._actors[actor_id].model_copy(update={"token": new_token()})
            snapshot = [
                rotated if a.id == actor_id else a for a in self._actors.values()
            ]
            await self._store.replace_all(
                ACTORS, [a.model_dump(mode="json") for a in snapshot]
            )
            self._index(rotated)
        logger.info("Rotated session token for %s", actor_id)
        return rotated

    def resolve_token(self, token: str | None) -> Actor:
        if not token:
            raise Unauthenticated("No token provided")
        actor_id = self._by_token.get(token)
        if actor_id is None:
            raise Unauthenticated("Invalid token")
        return self._actors[actor_id]

    def get(self, actor_id: str) -> Actor | None:
        return self._actors.get(actor_id)

    def display_name_of(self, actor_id: str) -> str:
        actor = self._actors.get(actor_id)
        return actor.display_name if actor else UNKNOWN_NAME
