"""In-process AccountRepository.

Used when no MongoDB URI is configured (local development) and by the test
suite. Records are stored as the same dicts MongoDB would hold, so every
read returns a fresh model and no caller can mutate stored state directly.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, TypeVar

from bson import ObjectId

from errors import ConflictError, DuplicateAccountError, NotFoundError
from schemas.models.account import AccountDoc
from schemas.models.base import parse_object_id
from shared.datetime_utils import Clock, utcnow

T = TypeVar("T")


class InMemoryAccountRepository:
    def __init__(self, *, clock: Clock = utcnow) -> None:
        self._records: dict[ObjectId, dict] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _load(self, record: Optional[dict]) -> Optional[AccountDoc]:
        return AccountDoc.from_mongo(dict(record)) if record is not None else None

    def _check_unique(self, candidate: AccountDoc) -> None:
        for oid, record in self._records.items():
            if oid == candidate.id:
                continue
            if record["email"] == candidate.email:
                raise DuplicateAccountError("User with this email already exists")
            identity = record.get("external_identity")
            if (
                identity
                and candidate.external_identity
                and identity["provider"] == candidate.external_identity.provider
                and identity["subject"] == candidate.external_identity.subject
            ):
                raise ConflictError("External identity already linked to another account")

    async def insert(self, account: AccountDoc) -> AccountDoc:
        async with self._lock:
            now = self._clock()
            account = account.model_copy(
                update={
                    "id": account.id or ObjectId(),
                    "created_at": account.created_at or now,
                    "updated_at": now,
                    "version": 0,
                }
            )
            if account.id in self._records:
                raise DuplicateAccountError("Account already exists")
            self._check_unique(account)
            self._records[account.id] = account.to_mongo()
            return account.model_copy(deep=True)

    async def find_by_id(self, account_id: str) -> Optional[AccountDoc]:
        oid = parse_object_id(account_id)
        return self._load(self._records.get(oid)) if oid is not None else None

    async def find_by_email(self, email: str) -> Optional[AccountDoc]:
        for record in self._records.values():
            if record["email"] == email:
                return self._load(record)
        return None

    async def find_by_external_identity(
        self, provider: str, subject: str
    ) -> Optional[AccountDoc]:
        for record in self._records.values():
            identity = record.get("external_identity")
            if identity and identity["provider"] == provider and identity["subject"] == subject:
                return self._load(record)
        return None

    async def find_by_reset_token_hash(self, token_hash: str) -> Optional[AccountDoc]:
        for record in self._records.values():
            challenge = record.get("reset_challenge")
            if challenge and challenge["token_hash"] == token_hash:
                return self._load(record)
        return None

    async def modify(
        self, account_id: str, mutate: Callable[[AccountDoc], T]
    ) -> tuple[AccountDoc, T]:
        oid = parse_object_id(account_id)
        async with self._lock:
            record = self._records.get(oid) if oid is not None else None
            if record is None:
                raise NotFoundError("Account not found")
            draft = self._load(record)
            result = mutate(draft)
            draft.version += 1
            draft.updated_at = self._clock()
            self._check_unique(draft)
            self._records[oid] = draft.to_mongo()
            return draft.model_copy(deep=True), result

    async def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._records)
