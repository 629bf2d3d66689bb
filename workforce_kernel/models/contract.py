"""
Module: workforce_kernel.models.contract
Responsibility: ORM persistence for contracts (MSA, SOW, standalone) and the
    participants attached to them.
Architecture position: Kernel > Models.  May import from db/ and the pure
    domain vocabularies only.

Invariants enforced:
    - ck_participant_approver_no_signature: an approver participant never
      requires a signature.  The participant service rejects the write first
      (InvariantViolation); this constraint is the last line.
    - ck_participant_identity: every participant names a user, a company,
      or both.
    - ``status`` is derived from ``workflow_status`` on every state write
      (LEGACY_CONTRACT_STATUS); it is never set independently.

Failure modes:
    - IntegrityError when either check constraint is violated.

Audit relevance:
    Approval and signature timestamps on ContractParticipant are the
    evidence that a contract became active legitimately.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce_kernel.db.base import TrackedBase, UUIDString
from workforce_kernel.domain.states import (
    ContractStatus,
    ContractType,
    ContractWorkflowStatus,
    ParticipantRole,
)


class Contract(TrackedBase):
    """
    A master agreement, a statement of work under one, or a standalone contract.

    Contract:
        ``workflow_status`` moves only through the contract workflow table and
        only by compare-and-set on (id, workflow_status); ``version`` is bumped
        on every such write.

    Guarantees:
        - A SOW or norm with ``parent_id`` references an MSA of the same
          tenant that was neither cancelled nor terminated when linked.

    Non-goals:
        - Line items, rates and document rendering are not modelled here.
    """

    __tablename__ = "contracts"

    __table_args__ = (
        Index("idx_contract_tenant_status", "tenant_id", "workflow_status"),
        Index("idx_contract_parent", "parent_id"),
        Index("idx_contract_company", "company_id"),
        Index("idx_contract_owner", "owner_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    contract_type: Mapped[ContractType] = mapped_column(
        String(10),
        nullable=False,
    )

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("contracts.id"),
        nullable=True,
        doc="Parent MSA for a SOW or norm contract",
    )

    status: Mapped[ContractStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ContractStatus.DRAFT.value,
    )

    workflow_status: Mapped[ContractWorkflowStatus] = mapped_column(
        String(40),
        nullable=False,
        default=ContractWorkflowStatus.DRAFT.value,
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    country_code: Mapped[str] = mapped_column(String(2), nullable=False)

    rate_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    payment_terms_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)

    company_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=True,
    )

    owner_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=True,
    )

    termination_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    participants: Mapped[list[ContractParticipant]] = relationship(
        "ContractParticipant",
        back_populates="contract",
        order_by="ContractParticipant.created_at",
        viewonly=True,
    )

    @property
    def is_msa(self) -> bool:
        return self.contract_type == ContractType.MSA

    def __repr__(self) -> str:
        return f"<Contract {self.title} [{self.workflow_status}]>"


class ContractParticipant(TrackedBase):
    """
    A user and/or company playing one role on one contract.

    Guarantees:
        - role = approver implies requires_signature = false (check constraint).
        - approved_at is set exactly when approved flips to true.
        - signed_at is set once and never cleared.
    """

    __tablename__ = "contract_participants"

    __table_args__ = (
        CheckConstraint(
            "NOT (role = 'approver' AND requires_signature)",
            name="ck_participant_approver_no_signature",
        ),
        CheckConstraint(
            "user_id IS NOT NULL OR company_id IS NOT NULL",
            name="ck_participant_identity",
        ),
        Index("idx_participant_contract_role", "contract_id", "role"),
        Index("idx_participant_user", "user_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("contracts.id"),
        nullable=False,
    )

    user_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=True,
    )

    company_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=True,
    )

    role: Mapped[ParticipantRole] = mapped_column(String(20), nullable=False)

    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    requires_signature: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    signed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    document_url: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
        doc="Opaque file-store key of the signed document",
    )

    contract: Mapped[Contract] = relationship("Contract", back_populates="participants")

    @property
    def is_signed(self) -> bool:
        return self.signed_at is not None

    def __repr__(self) -> str:
        return f"<ContractParticipant {self.role} contract={self.contract_id}>"
