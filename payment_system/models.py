from .domain.models.settlement import Settlement, SettlementLine, SettlementPayout


__all__ = [
    "Settlement",
    "SettlementLine",
    "SettlementPayout",
]
