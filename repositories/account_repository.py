"""MongoDB implementation of AccountRepository.

Atomic read-modify-write is an optimistic compare-and-swap on the
``version`` field: read, apply the mutator to a copy, ``replace_one`` guarded
by the version that was read. A lost race re-reads and re-applies, up to
``max_retries`` times, then raises ConcurrentUpdateError.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, TypeVar

from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from errors import ConcurrentUpdateError, ConflictError, DuplicateAccountError, NotFoundError
from schemas.models.account import AccountDoc
from schemas.models.base import parse_object_id
from shared.datetime_utils import Clock, utcnow
from shared.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

ACCOUNTS_COLLECTION = "accounts"


def _version_filter(version: int) -> Any:
    # Records written before versioning have no `version` key at all
    if version == 0:
        return {"$in": [0, None]}
    return version


class MongoAccountRepository:
    def __init__(
        self,
        db: Any,
        *,
        max_retries: int = 5,
        clock: Clock = utcnow,
    ) -> None:
        self._db = db
        self._col = db[ACCOUNTS_COLLECTION]
        self._max_retries = max_retries
        self._clock = clock

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("email", ASCENDING)], unique=True)
        await self._col.create_index(
            [
                ("external_identity.provider", ASCENDING),
                ("external_identity.subject", ASCENDING),
            ],
            unique=True,
            partialFilterExpression={"external_identity": {"$type": "object"}},
        )
        await self._col.create_index(
            [("reset_challenge.token_hash", ASCENDING)],
            partialFilterExpression={"reset_challenge": {"$type": "object"}},
        )
        log.info("account_indexes_ensured")

    async def insert(self, account: AccountDoc) -> AccountDoc:
        now = self._clock()
        account = account.model_copy(
            update={
                "created_at": account.created_at or now,
                "updated_at": now,
                "version": 0,
            }
        )
        doc = account.to_mongo()
        try:
            result = await self._col.insert_one(doc)
        except DuplicateKeyError:
            log.warning("account_insert_duplicate", email=account.email)
            raise DuplicateAccountError("User with this email already exists") from None
        return account.model_copy(update={"id": result.inserted_id})

    async def find_by_id(self, account_id: str) -> Optional[AccountDoc]:
        oid = parse_object_id(account_id)
        if oid is None:
            return None
        return AccountDoc.from_mongo(await self._col.find_one({"_id": oid}))

    async def find_by_email(self, email: str) -> Optional[AccountDoc]:
        return AccountDoc.from_mongo(await self._col.find_one({"email": email}))

    async def find_by_external_identity(
        self, provider: str, subject: str
    ) -> Optional[AccountDoc]:
        doc = await self._col.find_one(
            {
                "external_identity.provider": provider,
                "external_identity.subject": subject,
            }
        )
        return AccountDoc.from_mongo(doc)

    async def find_by_reset_token_hash(self, token_hash: str) -> Optional[AccountDoc]:
        doc = await self._col.find_one({"reset_challenge.token_hash": token_hash})
        return AccountDoc.from_mongo(doc)

    async def modify(
        self, account_id: str, mutate: Callable[[AccountDoc], T]
    ) -> tuple[AccountDoc, T]:
        oid = parse_object_id(account_id)
        if oid is None:
            raise NotFoundError("Account not found")

        for attempt in range(1, self._max_retries + 1):
            current = AccountDoc.from_mongo(await self._col.find_one({"_id": oid}))
            if current is None:
                raise NotFoundError("Account not found")

            draft = current.model_copy(deep=True)
            result = mutate(draft)
            draft.version = current.version + 1
            draft.updated_at = self._clock()

            try:
                write = await self._col.replace_one(
                    {"_id": oid, "version": _version_filter(current.version)},
                    draft.to_mongo(),
                )
            except DuplicateKeyError:
                log.warning("account_update_duplicate", account_id=account_id)
                raise ConflictError(
                    "Update conflicts with another account"
                ) from None

            if write.matched_count == 1:
                return draft, result

            log.warning(
                "account_update_conflict",
                account_id=account_id,
                attempt=attempt,
                expected_version=current.version,
            )

        log.error(
            "account_update_retries_exhausted",
            account_id=account_id,
            max_retries=self._max_retries,
        )
        raise ConcurrentUpdateError("Account is busy, please retry")

    async def ping(self) -> bool:
        await self._db.client.admin.command("ping")
        return True
