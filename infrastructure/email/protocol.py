"""Notifier protocol — services depend on this, not the concrete implementation.

Every method reports delivery as a bool; implementations must not raise for
transport failures.
"""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class Notifier(Protocol):
    async def send_otp_email(
        self,
        email: str,
        user_name: Optional[str],
        otp_code: str,
        *,
        is_resend: bool = False,
    ) -> bool: ...

    async def send_password_reset_email(
        self, email: str, user_name: Optional[str], reset_url: str
    ) -> bool: ...
