# crmsync/adapters/repos/credentials.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...models import ProviderCredential


class CredentialRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_secret(self, tenant_id: str, provider: str) -> str | None:
        q = select(ProviderCredential.secret).where(
            ProviderCredential.tenant_id == tenant_id,
            ProviderCredential.provider == provider,
        )
        return (await self.session.execute(q)).scalars().first()

    async def set_secret(self, tenant_id: str, provider: str, secret: str) -> ProviderCredential:
        q = select(ProviderCredential).where(
            ProviderCredential.tenant_id == tenant_id,
            ProviderCredential.provider == provider,
        )
        row = (await self.session.execute(q)).scalars().first()
        if row is None:
            row = ProviderCredential(tenant_id=tenant_id, provider=provider, secret=secret)
            self.session.add(row)
        else:
            row.secret = secret
        await self.session.flush()
        return row
