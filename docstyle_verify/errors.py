from __future__ import annotations


class StructuralError(ValueError):
    pass


class PartialDataError(ValueError):
    def __init__(self, part_name: str, reason: str) -> None:
        super().__init__(f"{part_name}: {reason}")
        self.part_name = part_name
        self.reason = reason


class ProcessingCancelled(RuntimeError):
    pass


class ProcessingTimeout(ProcessingCancelled):
    pass
