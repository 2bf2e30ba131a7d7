from typing import Any, Dict, List, Optional
import logging

from chitfund.core.documents import DocumentStore, COLLECTION_CUSTOMERS, COLLECTION_LOANS, COLLECTION_USERS
from chitfund.core.encryption import EncryptionCodec, codec as default_codec
from chitfund.core.exceptions import DocumentNotFoundError
from chitfund.core.security import normalize_email
from chitfund.core.utils import now_ms
from chitfund.modules.activities.schemas import ActivityCreate, ActivityType
from chitfund.modules.activities.services import ActivityService
from chitfund.modules.auth.provider import IdentityProvider
from chitfund.modules.customers.services import CustomerService
from chitfund.modules.loans.schemas import LoanUpdate, UNASSIGNED_AGENT
from chitfund.modules.loans.services import LoanService
from chitfund.modules.users.schemas import (
    AgentSaveRequest, ThemePreference, UserResponse, UserRole, UserStatus
)

logger = logging.getLogger(__name__)


class DuplicateUserError(Exception):
    """A role record or identity already exists for the email"""

    def __init__(self, email: str):
        self.email = email
        super().__init__("User already exists")


class AgentHasCustomersError(Exception):
    """An agent cannot be deleted while customers are assigned"""

    def __init__(self, agent_uid: str, count: int):
        self.agent_uid = agent_uid
        self.count = count
        super().__init__(f"Agent has {count} assigned customers; reassign them first")


def to_user_response(doc: Dict[str, Any]) -> UserResponse:
    """Client view of a role record; the invite password is never exposed"""
    data = {k: v for k, v in doc.items() if k not in ("initialPassword", "photo")}
    data.setdefault("uid", doc.get("id"))
    data.setdefault("createdAt", 0)
    return UserResponse(**data, pending_invite=doc.get("initialPassword") is not None)


class UserService:
    """Role records: agents, admins and pending invites"""

    def __init__(
        self,
        store: DocumentStore,
        provider: IdentityProvider,
        codec: Optional[EncryptionCodec] = None
    ):
        self.store = store
        self.provider = provider
        self.codec = codec or default_codec

    async def get_agents(self) -> List[Dict[str, Any]]:
        return await self.store.query(COLLECTION_USERS, {"role": UserRole.AGENT.value})

    async def get_all(self) -> List[Dict[str, Any]]:
        return await self.store.list(COLLECTION_USERS)

    async def get(self, uid: str) -> Optional[Dict[str, Any]]:
        return await self.store.get(COLLECTION_USERS, uid)

    async def save_agent(self, agent: AgentSaveRequest) -> str:
        """
        Create or edit an agent profile and return its uid.

        A new agent is provisioned as an invite whose initial password is the
        email address; the agent claims it on first login.
        """
        email = normalize_email(agent.email)
        fields = agent.to_document(exclude_unset=True)
        fields.pop("uid", None)
        fields["email"] = email
        if fields.get("photo"):
            fields["photo"] = self.codec.encrypt(fields["photo"])

        existing = await self.get(agent.uid) if agent.uid else None
        if existing is None:
            if await self.store.query(COLLECTION_USERS, {"email": email}):
                raise DuplicateUserError(email)
            uid = agent.uid or self.store.new_id()
            fields.update({
                "uid": uid,
                "role": UserRole.AGENT.value,
                "status": UserStatus.ACTIVE.value,
                "createdAt": now_ms(),
                "initialPassword": email,
            })
        else:
            uid = agent.uid

        await self.store.set(COLLECTION_USERS, uid, fields, merge=True)
        logger.info(f"Agent {uid} saved")
        return uid

    async def invite_user(
        self,
        email: str,
        role: UserRole,
        name: str,
        initial_password: Optional[str] = None
    ) -> str:
        """Pre-provision a role record that is claimed on first login"""
        email = normalize_email(email)
        if await self.store.query(COLLECTION_USERS, {"email": email}):
            raise DuplicateUserError(email)
        if await self.provider.get_identity_by_email(email) is not None:
            # an identity without a role record could never claim the invite
            raise DuplicateUserError(email)

        invite_id = self.store.new_id()
        record = {
            "uid": invite_id,
            "email": email,
            "displayName": name,
            "role": role.value,
            "status": UserStatus.ACTIVE.value,
            "createdAt": now_ms(),
        }
        if initial_password:
            record["initialPassword"] = initial_password

        await self.store.set(COLLECTION_USERS, invite_id, record)
        logger.info(f"Invited {email} as {role.value}")
        return invite_id

    async def update_status(self, uid: str, status: UserStatus) -> None:
        await self.store.update(COLLECTION_USERS, uid, {"status": status.value})
        logger.info(f"User {uid} status set to {status.value}")

    async def update_theme(self, uid: str, theme: ThemePreference) -> None:
        await self.store.update(COLLECTION_USERS, uid, {"themePreference": theme.value})

    async def delete(self, uid: str) -> None:
        await self.store.delete(COLLECTION_USERS, uid)
        logger.info(f"User {uid} deleted")


class AgentService:
    """Agent assignment of loans and customers"""

    def __init__(
        self,
        store: DocumentStore,
        users: UserService,
        loans: LoanService,
        customers: CustomerService,
        activities: ActivityService
    ):
        self.store = store
        self.users = users
        self.loans = loans
        self.customers = customers
        self.activities = activities

    async def assign_loan(self, loan_id: str, agent_uid: str) -> None:
        """Give a loan to an agent; an unassigned customer follows the loan"""
        agent = await self._require_agent(agent_uid)
        loan = await self.loans.get(loan_id)
        if loan is None:
            raise DocumentNotFoundError(COLLECTION_LOANS, loan_id)

        await self.loans.update(loan_id, LoanUpdate(agent_id=agent_uid))

        customer = await self.customers.get(loan["customerId"]) or {}
        if customer and customer.get("agentId") in (None, "", UNASSIGNED_AGENT):
            await self.customers.update(customer["id"], {"agentId": agent_uid})

        agent_name = agent.get("displayName") or "Unknown"
        customer_name = customer.get("name", "Unknown")
        await self.activities.log(ActivityCreate(
            type=ActivityType.ASSIGNMENT,
            customer_id=loan["customerId"],
            customer_name=customer_name,
            agent_id=agent_uid,
            agent_name=agent_name,
            description=f"Loan {loan_id[:8]} of {customer_name} assigned to Agent {agent_name}",
        ))

    async def reassign_customer(self, customer_id: str, agent_uid: str) -> None:
        agent = await self._require_agent(agent_uid)
        customer = await self.customers.get(customer_id)
        if customer is None:
            raise DocumentNotFoundError(COLLECTION_CUSTOMERS, customer_id)

        previous = await self.users.get(customer.get("agentId") or UNASSIGNED_AGENT) or {}
        await self.customers.update(customer_id, {"agentId": agent_uid})

        agent_name = agent.get("displayName") or "Unknown"
        await self.activities.log(ActivityCreate(
            type=ActivityType.ASSIGNMENT,
            customer_id=customer_id,
            customer_name=customer.get("name", "Unknown"),
            agent_id=agent_uid,
            agent_name=agent_name,
            description=(
                f"Customer reassigned from {previous.get('displayName') or 'Previous Agent'} "
                f"to {agent_name}"
            ),
        ))

    async def deactivate_agent(self, agent_uid: str, reassign_to: Optional[str] = None) -> int:
        """
        Move the agent's customers (to `reassign_to`, else unassigned) and
        mark the agent INACTIVE. Returns the number of customers moved.
        """
        agent = await self._require_agent(agent_uid)
        target = await self._require_agent(reassign_to) if reassign_to else None

        customers = await self.customers.get_by_agent_id(agent_uid)
        for customer in customers:
            await self.customers.update(customer["id"], {"agentId": reassign_to or UNASSIGNED_AGENT})
            await self.activities.log(ActivityCreate(
                type=ActivityType.ASSIGNMENT if target else ActivityType.UNASSIGNMENT,
                customer_id=customer["id"],
                customer_name=customer.get("name", "Unknown"),
                agent_id=reassign_to,
                agent_name=(target or {}).get("displayName"),
                description=f"Customer moved off deactivated Agent {agent.get('displayName') or agent_uid}",
            ))

        await self.users.update_status(agent_uid, UserStatus.INACTIVE)
        return len(customers)

    async def delete_agent(self, agent_uid: str) -> None:
        assigned = await self.customers.get_by_agent_id(agent_uid)
        if assigned:
            raise AgentHasCustomersError(agent_uid, len(assigned))
        await self.users.delete(agent_uid)

    async def _require_agent(self, agent_uid: str) -> Dict[str, Any]:
        agent = await self.users.get(agent_uid)
        if agent is None:
            raise DocumentNotFoundError(COLLECTION_USERS, agent_uid)
        return agent
