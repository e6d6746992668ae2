from .settlement import Settlement, SettlementLine, SettlementPayout, SettlementQuerySet


__all__ = [
    "Settlement",
    "SettlementLine",
    "SettlementPayout",
    "SettlementQuerySet",
]
