"""Audit trail: a shared list of ``"action id"`` lines."""


def injectable() -> list[str]:
    return []
