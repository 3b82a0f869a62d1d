"""
Settlement endpoints.

Phase B processes exactly one chunk per call and is safe to repeat until the
returned status is terminal.  Long imports can instead be admitted as a
``settlement_import`` job through ``/jobs/bulk-op/start``.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from ordermgmt_kernel.access import MembershipRole
from ordermgmt_kernel.logging_config import LogContext, get_logger
from ordermgmt_settlement.services import (
    IntegrityAuditor,
    SettlementImportService,
    SettlementRepairService,
)

from ordermgmt_api.dependencies import ApiState, TenantAccess, get_access, get_db, get_state
from ordermgmt_api.schemas import (
    AuditResponse,
    ImportRequest,
    OptionalImportRequest,
    OrderIdsRequest,
    OrderRowsResponse,
    PhaseAResponse,
    PhaseBResponse,
    RebuildResponse,
    RecomputeCogsResponse,
    RematchResponse,
)

logger = get_logger("api.settlement")

router = APIRouter(prefix="/settlement", tags=["settlement"])


def _imports(state: ApiState, db: Session) -> SettlementImportService:
    return SettlementImportService(db, state.config.settlement, state.clock)


def _repair(state: ApiState, db: Session) -> SettlementRepairService:
    return SettlementRepairService(db, state.config.settlement, state.clock)


@router.post("/import/phase-a", response_model=PhaseAResponse)
def import_phase_a(
    tenant_id: UUID = Form(...),
    file: UploadFile = File(...),
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> PhaseAResponse:
    principal = access.require(tenant_id, MembershipRole.ADMIN)
    content = file.file.read()
    file_name = file.filename or "upload"
    logger.info("settlement_upload_received", extra={"file_name": file_name, "size_bytes": len(content)})
    result = _imports(state, db).start_phase_a(tenant_id, file_name, content, actor_id=principal.user_id)
    db.commit()
    return PhaseAResponse.model_validate(result)


@router.post("/import/phase-b", response_model=PhaseBResponse)
def import_phase_b(
    body: ImportRequest,
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> PhaseBResponse:
    access.require(body.tenant_id, MembershipRole.ADMIN)
    with LogContext.bind(import_id=body.import_id):
        result = _imports(state, db).process_next_chunk(body.tenant_id, body.import_id)
    db.commit()
    return PhaseBResponse.model_validate(result)


@router.post("/rebuild", response_model=RebuildResponse)
def rebuild_rows(
    body: ImportRequest,
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> RebuildResponse:
    access.require(body.tenant_id, MembershipRole.ADMIN)
    result = _repair(state, db).rebuild_rows(body.tenant_id, body.import_id)
    db.commit()
    return RebuildResponse.model_validate(result)


@router.post("/rematch", response_model=RematchResponse)
def rematch(
    body: OptionalImportRequest,
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> RematchResponse:
    access.require(body.tenant_id, MembershipRole.ADMIN)
    result = _repair(state, db).rematch(body.tenant_id, body.import_id)
    db.commit()
    return RematchResponse.model_validate(result)


@router.post("/recompute-cogs", response_model=RecomputeCogsResponse)
def recompute_cogs(
    body: OptionalImportRequest,
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> RecomputeCogsResponse:
    access.require(body.tenant_id, MembershipRole.ADMIN)
    result = _repair(state, db).recompute_cogs(body.tenant_id, body.import_id)
    db.commit()
    return RecomputeCogsResponse.model_validate(result)


@router.post("/orders/delete", response_model=OrderRowsResponse)
def delete_orders(
    body: OrderIdsRequest,
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> OrderRowsResponse:
    access.require(body.tenant_id, MembershipRole.ADMIN)
    result = _repair(state, db).delete_orders(body.tenant_id, body.order_ids)
    db.commit()
    return OrderRowsResponse.model_validate(result)


@router.post("/orders/restore", response_model=OrderRowsResponse)
def restore_orders(
    body: OrderIdsRequest,
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> OrderRowsResponse:
    access.require(body.tenant_id, MembershipRole.ADMIN)
    result = _repair(state, db).restore_orders(body.tenant_id, body.order_ids)
    db.commit()
    return OrderRowsResponse.model_validate(result)


@router.post("/audit", response_model=AuditResponse)
def audit(
    body: OptionalImportRequest,
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> AuditResponse:
    access.require(body.tenant_id, MembershipRole.ADMIN)
    report = IntegrityAuditor(db, state.config.settlement).audit(body.tenant_id, body.import_id)
    return AuditResponse.from_report(report)
