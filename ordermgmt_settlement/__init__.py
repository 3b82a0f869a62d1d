"""
ordermgmt_settlement -- settlement report reconciliation.

Phase A parses an uploaded report into typed rows on an import record;
Phase B materializes and matches them chunk by chunk (directly, or through
the ``settlement_import`` job).  Repair operations and the read-only
Integrity Auditor work on the materialized rows, which are the single
authoritative source of match state.
"""
