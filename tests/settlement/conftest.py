"""
Settlement fixtures: a three-row report, the catalogue it reconciles
against, and the services under test.

Two report orders exist in the catalogue (one costed on the order, one only
through its line's SKU cost); the third does not exist at all.
"""

import pytest

from ordermgmt_settlement.services.auditor import IntegrityAuditor
from ordermgmt_settlement.services.import_service import SettlementImportService
from ordermgmt_settlement.services.repair_service import SettlementRepairService

from tests.settlement.reports import REPORT_LINES, report


@pytest.fixture
def report_bytes():
    return report(*REPORT_LINES)


@pytest.fixture
def catalogue(make_sku, make_order):
    widget = make_sku("WIDGET", cost_price="3.00")
    gadget = make_sku("GADGET", cost_price="4.00")
    costed = make_order("114-1111111-1111111", total_cost="6.00", lines=[(widget, 2, "3.00")])
    uncosted = make_order("114-2222222-2222222", total_cost="0", lines=[(gadget, 1, None)])
    return {"widget": widget, "gadget": gadget, "costed": costed, "uncosted": uncosted}


@pytest.fixture
def import_service(db_session, config, clock):
    return SettlementImportService(db_session, config.settlement, clock)


@pytest.fixture
def repair_service(db_session, config, clock):
    return SettlementRepairService(db_session, config.settlement, clock)


@pytest.fixture
def auditor(db_session, config):
    return IntegrityAuditor(db_session, config.settlement)


@pytest.fixture
def completed_import(import_service, catalogue, report_bytes, tenant_id):
    """Import id of the three-row report, processed to completion."""
    phase_a = import_service.start_phase_a(tenant_id, "january.csv", report_bytes)
    import_service.run_to_completion(tenant_id, phase_a.import_id)
    return phase_a.import_id
