"""AccountRepository protocol — services depend on this, not the concrete store.

``modify`` is the only write path after creation. It must behave as an
atomic read-modify-write of a single account: *mutate* receives a private
copy of the current record and either returns (the copy is persisted, the
return value is handed back) or raises (nothing is persisted). Under
contention the mutator may be invoked more than once, so it must be a pure
function of the record it is given.
"""

from typing import Callable, Optional, Protocol, TypeVar, runtime_checkable

from schemas.models.account import AccountDoc

T = TypeVar("T")

Mutator = Callable[[AccountDoc], T]


@runtime_checkable
class AccountRepository(Protocol):
    async def insert(self, account: AccountDoc) -> AccountDoc: ...

    async def find_by_id(self, account_id: str) -> Optional[AccountDoc]: ...

    async def find_by_email(self, email: str) -> Optional[AccountDoc]: ...

    async def find_by_external_identity(
        self, provider: str, subject: str
    ) -> Optional[AccountDoc]: ...

    async def find_by_reset_token_hash(
        self, token_hash: str
    ) -> Optional[AccountDoc]: ...

    async def modify(
        self, account_id: str, mutate: Mutator[T]
    ) -> tuple[AccountDoc, T]: ...

    async def ping(self) -> bool: ...
