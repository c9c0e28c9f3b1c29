"""
Journals, accounts, projects and bank accounts.

Just enough to set up a tenant's books; codes are unique per organization.
"""

from typing import List, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_api.core.errors import ConflictError
from ledger_api.core.tenant_isolation import get_entity_by_id
from ledger_api.models.banking import BankAccount
from ledger_api.models.base import Base
from ledger_api.models.ledger import Account, Journal, Project
from ledger_api.schemas.banking import BankAccountCreate
from ledger_api.schemas.reference_data import AccountCreate, JournalCreate, ProjectCreate

T = TypeVar("T", bound=Base)


class ReferenceDataService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _list(self, model: Type[T], organization_id: str, order_by) -> List[T]:
        result = await self.db.execute(
            select(model).where(model.organization_id == organization_id).order_by(order_by)
        )
        return list(result.scalars().all())

    async def _ensure_unique(self, model: Type[T], organization_id: str, column, value: str, code: str) -> None:
        result = await self.db.execute(
            select(model.id).where(model.organization_id == organization_id, column == value)
        )
        if result.first() is not None:
            raise ConflictError(code, f"{model.__name__} {value} already exists in the organization.")

    async def _add(self, instance: T) -> T:
        self.db.add(instance)
        await self.db.flush()
        return instance

    # Journals

    async def list_journals(self, organization_id: str) -> List[Journal]:
        return await self._list(Journal, organization_id, Journal.code)

    async def create_journal(self, organization_id: str, payload: JournalCreate) -> Journal:
        await self._ensure_unique(Journal, organization_id, Journal.code, payload.code, "JOURNAL_CODE_EXISTS")
        return await self._add(
            Journal(organization_id=organization_id, code=payload.code, name=payload.name.strip(), type=payload.type.value)
        )

    # Accounts

    async def list_accounts(self, organization_id: str) -> List[Account]:
        return await self._list(Account, organization_id, Account.code)

    async def create_account(self, organization_id: str, payload: AccountCreate) -> Account:
        await self._ensure_unique(Account, organization_id, Account.code, payload.code, "ACCOUNT_CODE_EXISTS")
        return await self._add(
            Account(organization_id=organization_id, code=payload.code, name=payload.name.strip(), type=payload.type.value)
        )

    # Projects

    async def list_projects(self, organization_id: str) -> List[Project]:
        return await self._list(Project, organization_id, Project.code)

    async def create_project(self, organization_id: str, payload: ProjectCreate) -> Project:
        code = payload.code.strip()
        await self._ensure_unique(Project, organization_id, Project.code, code, "PROJECT_CODE_EXISTS")
        return await self._add(Project(organization_id=organization_id, code=code, name=payload.name.strip()))

    # Bank accounts

    async def list_bank_accounts(self, organization_id: str) -> List[BankAccount]:
        return await self._list(BankAccount, organization_id, BankAccount.name)

    async def create_bank_account(self, organization_id: str, payload: BankAccountCreate) -> BankAccount:
        await get_entity_by_id(
            self.db,
            Account,
            payload.account_id,
            organization_id,
            "ACCOUNT_NOT_FOUND",
            "The ledger account backing this bank account does not exist.",
        )
        name = payload.name.strip()
        await self._ensure_unique(BankAccount, organization_id, BankAccount.name, name, "BANK_ACCOUNT_NAME_EXISTS")
        return await self._add(
            BankAccount(organization_id=organization_id, name=name, iban=payload.iban, account_id=payload.account_id)
        )
