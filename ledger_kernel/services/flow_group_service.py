"""
FlowGroupService -- find-or-create a partner's open ledger folder.

Responsibility:
    Resolves the OPEN flow group for (partner, academic year), creating it
    lazily on the first document or payment, and manages the OPEN -> SETTLED
    transition.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - At most one OPEN flow group per (partner, year).  The insert runs in
      a savepoint; an IntegrityError from the partial unique index means a
      concurrent transaction created it first, and is retried as a find.
    - Writes (documents, payments, returns, voids, reversals) only target
      OPEN flow groups (``require_open()``).

Failure modes:
    - FlowGroupNotFoundError: unknown id.
    - FlowGroupSettledError: write attempted against a SETTLED group.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import FlowGroupInfo, PartnerRef
from ledger_kernel.exceptions import FlowGroupNotFoundError, FlowGroupSettledError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.flow_group import FlowGroup, FlowGroupStatus
from ledger_kernel.services.base import BaseService

logger = get_logger("services.flow_group")


class FlowGroupService(BaseService[FlowGroup]):
    """Service for flow group resolution and settlement."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def open_flow_group(
        self,
        partner: PartnerRef,
        academic_year_id: UUID,
        actor_id: UUID,
        description: str | None = None,
    ) -> FlowGroupInfo:
        """
        Return the partner's OPEN flow group for the year, creating it if needed.

        Postconditions:
            - Exactly one OPEN flow group exists for (partner, year) once the
              caller's transaction commits.
        """
        existing = self._find_open_orm(partner, academic_year_id)
        if existing is not None:
            return FlowGroupInfo.from_model(existing)

        savepoint = self.session.begin_nested()
        try:
            group = FlowGroup(
                academic_year_id=academic_year_id,
                status=FlowGroupStatus.OPEN,
                description=description,
                created_by_id=actor_id,
            )
            setattr(group, FlowGroup.partner_column(partner.kind), partner.partner_id)
            self.session.add(group)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "flow_group_race_retry",
                extra={
                    "partner_kind": partner.kind.value,
                    "partner_id": str(partner.partner_id),
                },
            )
            existing = self._find_open_orm(partner, academic_year_id)
            if existing is None:
                raise
            return FlowGroupInfo.from_model(existing)

        logger.info(
            "flow_group_opened",
            extra={
                "flow_group_id": str(group.id),
                "partner_kind": partner.kind.value,
                "partner_id": str(partner.partner_id),
                "academic_year_id": str(academic_year_id),
            },
        )
        return FlowGroupInfo.from_model(group)

    def find_open(self, partner: PartnerRef, academic_year_id: UUID) -> FlowGroupInfo | None:
        group = self._find_open_orm(partner, academic_year_id)
        return FlowGroupInfo.from_model(group) if group is not None else None

    def get(self, flow_group_id: UUID) -> FlowGroupInfo:
        return FlowGroupInfo.from_model(self._get_orm(flow_group_id))

    def require_open(self, flow_group_id: UUID, for_update: bool = False) -> FlowGroupInfo:
        """
        Return the group if it is OPEN.

        With ``for_update`` the row is locked until the transaction ends,
        which serializes payments that check and then settle the balance.
        """
        group = self._get_orm(flow_group_id, for_update=for_update)
        if not group.is_open:
            logger.warning(
                "flow_group_settled_violation",
                extra={"flow_group_id": str(flow_group_id)},
            )
            raise FlowGroupSettledError(str(flow_group_id))
        return FlowGroupInfo.from_model(group)

    def settle(self, flow_group_id: UUID, actor_id: UUID) -> FlowGroupInfo:
        """OPEN -> SETTLED.  Settling a SETTLED group raises FlowGroupSettledError."""
        group = self._get_orm(flow_group_id, for_update=True)
        if not group.is_open:
            raise FlowGroupSettledError(str(flow_group_id))

        group.status = FlowGroupStatus.SETTLED
        group.settled_at = self._clock.now()
        group.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "flow_group_settled",
            extra={
                "flow_group_id": str(group.id),
                "partner_kind": group.partner_kind.value,
            },
        )
        return FlowGroupInfo.from_model(group)

    def _get_orm(self, flow_group_id: UUID, for_update: bool = False) -> FlowGroup:
        stmt = select(FlowGroup).where(FlowGroup.id == flow_group_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        group = self.session.execute(stmt).scalar_one_or_none()
        if group is None:
            raise FlowGroupNotFoundError(str(flow_group_id))
        return group

    def _find_open_orm(self, partner: PartnerRef, academic_year_id: UUID) -> FlowGroup | None:
        column = getattr(FlowGroup, FlowGroup.partner_column(partner.kind))
        return self.session.execute(
            select(FlowGroup).where(
                FlowGroup.academic_year_id == academic_year_id,
                FlowGroup.status == FlowGroupStatus.OPEN,
                column == partner.partner_id,
            )
        ).scalar_one_or_none()
