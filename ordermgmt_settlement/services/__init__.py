"""Settlement services: ingestion, repair and audit.  None of them commit."""

from ordermgmt_settlement.services.auditor import IntegrityAuditor
from ordermgmt_settlement.services.import_service import SettlementImportService
from ordermgmt_settlement.services.repair_service import SettlementRepairService

__all__ = [
    "IntegrityAuditor",
    "SettlementImportService",
    "SettlementRepairService",
]
