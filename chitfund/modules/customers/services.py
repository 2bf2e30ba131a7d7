from typing import Any, Dict, List, Mapping, Optional
import logging

from chitfund.core.config import settings
from chitfund.core.documents import DocumentStore, COLLECTION_CUSTOMERS, COLLECTION_USERS
from chitfund.core.encryption import EncryptionCodec, codec as default_codec, run_with_timeout
from chitfund.core.exceptions import DocumentNotFoundError
from chitfund.core.utils import now_ms, is_overdue
from chitfund.modules.activities.schemas import ActivityCreate, ActivityType
from chitfund.modules.activities.services import ActivityService
from chitfund.modules.customers.schemas import (
    CustomerCreate, CustomerRegistration, CustomerProfileUpdate, CustomerRegistered,
    CustomerStatus, KycStatus
)
from chitfund.modules.loans.schemas import (
    AGGREGATE_FIELDS, CustomerAggregates, LoanCreate, LoanStatus, UNASSIGNED_AGENT, DEFAULT_TENURE_WEEKS
)
from chitfund.modules.loans.services import LoanService

logger = logging.getLogger(__name__)

IMAGE_FIELDS = ("photo", "aadhaarImage", "panImage")
ID_IMAGE_FIELDS = ("aadhaarImage", "panImage")


class CustomerService:
    """Customer profiles, registration with the first loan, KYC images"""

    def __init__(
        self,
        store: DocumentStore,
        loans: LoanService,
        activities: ActivityService,
        codec: Optional[EncryptionCodec] = None,
        upload_timeout: Optional[float] = None
    ):
        self.store = store
        self.loans = loans
        self.activities = activities
        self.codec = codec or default_codec
        self.upload_timeout = upload_timeout if upload_timeout is not None else settings.UPLOAD_TIMEOUT_SECONDS

    async def get_all(self) -> List[Dict[str, Any]]:
        return await self.store.list(COLLECTION_CUSTOMERS)

    async def get_by_agent_id(self, agent_id: str) -> List[Dict[str, Any]]:
        return await self.store.query(COLLECTION_CUSTOMERS, {"agentId": agent_id})

    async def get(self, customer_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get(COLLECTION_CUSTOMERS, customer_id)

    async def create(self, customer_data: CustomerCreate) -> str:
        """Create a customer with zeroed aggregates"""
        return await self._insert(customer_data.to_document())

    async def update(self, customer_id: str, fields: Mapping[str, Any]) -> None:
        """
        Partially update a customer.

        Aggregate fields are maintained from loans only; writing one here
        raises ValueError.
        """
        rejected = AGGREGATE_FIELDS.intersection(fields.keys())
        if rejected:
            raise ValueError(f"Aggregate fields cannot be written directly: {', '.join(sorted(rejected))}")
        await self.store.update(COLLECTION_CUSTOMERS, customer_id, fields)

    async def delete(self, customer_id: str) -> None:
        await self.store.delete(COLLECTION_CUSTOMERS, customer_id)
        logger.info(f"Customer {customer_id} deleted")

    async def deactivate(self, customer_id: str) -> None:
        await self.update(customer_id, {"status": CustomerStatus.INACTIVE.value})

    async def get_overdue(self, agent_id: Optional[str] = None, now: Optional[int] = None) -> List[Dict[str, Any]]:
        """Customers with an active loan and no payment within the grace window"""
        customers = await (self.get_by_agent_id(agent_id) if agent_id else self.get_all())
        return [
            c for c in customers
            if (c.get("activeLoansCount") or 0) > 0 and is_overdue(c.get("lastPaidDate"), now)
        ]

    async def get_kyc_images(self, customer_id: str) -> Dict[str, str]:
        """Decrypted image fields of a customer"""
        customer = await self.get(customer_id)
        if customer is None:
            raise DocumentNotFoundError(COLLECTION_CUSTOMERS, customer_id)
        return {field: self.codec.decrypt(customer.get(field) or "") for field in IMAGE_FIELDS}

    # ============================================================
    # Writes carrying images
    # ============================================================

    async def register(self, registration: CustomerRegistration) -> CustomerRegistered:
        """
        Register a customer and open the first loan.

        Raises UploadTimeoutError when the writes do not finish within the
        upload timeout; the caller may retry.
        """
        return await run_with_timeout(self._register(registration), self.upload_timeout)

    async def update_profile(self, customer_id: str, profile: CustomerProfileUpdate) -> None:
        await run_with_timeout(self._update_profile(customer_id, profile), self.upload_timeout)

    async def _register(self, registration: CustomerRegistration) -> CustomerRegistered:
        images = self._encrypt_images(registration.to_document())
        customer = CustomerCreate(
            name=registration.name,
            phone=registration.phone,
            email=registration.email,
            address=registration.address,
            repayment_type=registration.repayment_type,
            kyc_status=KycStatus.VERIFIED if self._has_id_image(images) else KycStatus.PENDING,
        )
        customer_id = await self._insert({**customer.to_document(), **images})

        loan_id = await self.loans.create(LoanCreate(
            customer_id=customer_id,
            agent_id=UNASSIGNED_AGENT,
            amount=registration.loan_amount,
            disbursed_amount=registration.disbursed_amount,
            repayment_type=registration.repayment_type,
            tenure=DEFAULT_TENURE_WEEKS,
            paid_amount=0,
            outstanding_amount=registration.loan_amount,
            status=LoanStatus.ACTIVE,
            start_date=now_ms(),
        ))

        await self.activities.log(ActivityCreate(
            type=ActivityType.LOAN_CREATED,
            customer_id=customer_id,
            customer_name=registration.name,
            description=f"New Customer {registration.name} registered with loan of ₹{registration.loan_amount:g}",
        ))
        return CustomerRegistered(customer_id=customer_id, loan_id=loan_id)

    async def _update_profile(self, customer_id: str, profile: CustomerProfileUpdate) -> None:
        existing = await self.get(customer_id)
        if existing is None:
            raise DocumentNotFoundError(COLLECTION_CUSTOMERS, customer_id)

        fields = profile.to_document(exclude_unset=True)
        fields.update(self._encrypt_images(fields))
        if self._has_id_image(fields):
            fields["kycStatus"] = KycStatus.VERIFIED.value
        await self.update(customer_id, fields)

        agent_id = existing.get("agentId") or UNASSIGNED_AGENT
        name = fields.get("name") or existing.get("name", "")
        await self.activities.log(ActivityCreate(
            type=ActivityType.STATUS_CHANGE,
            customer_id=customer_id,
            customer_name=name,
            agent_id=agent_id,
            agent_name=await self._agent_name(agent_id),
            description=f"Customer {name} profile updated",
        ))

    async def _insert(self, doc: Dict[str, Any]) -> str:
        doc = {**doc, **CustomerAggregates().to_document()}
        doc.setdefault("agentId", UNASSIGNED_AGENT)
        doc.setdefault("createdAt", now_ms())
        customer_id = await self.store.add(COLLECTION_CUSTOMERS, doc)
        logger.info(f"Customer {customer_id} created")
        return customer_id

    async def _agent_name(self, agent_id: str) -> str:
        if agent_id == UNASSIGNED_AGENT:
            return "Unassigned"
        agent = await self.store.get(COLLECTION_USERS, agent_id)
        return (agent or {}).get("displayName") or "Unassigned"

    def _encrypt_images(self, doc: Mapping[str, Any]) -> Dict[str, str]:
        return {field: self.codec.encrypt(doc[field]) for field in IMAGE_FIELDS if doc.get(field)}

    @staticmethod
    def _has_id_image(doc: Mapping[str, Any]) -> bool:
        return any(doc.get(field) for field in ID_IMAGE_FIELDS)
