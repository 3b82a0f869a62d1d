"""Settlement ORM models."""

from ordermgmt_settlement.models.settlement import (
    SettlementChunkModel,
    SettlementImportModel,
    SettlementRowModel,
)

__all__ = [
    "SettlementChunkModel",
    "SettlementImportModel",
    "SettlementRowModel",
]
