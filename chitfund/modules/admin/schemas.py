from typing import Dict

from chitfund.core.schemas import DocumentModel


class PurgeReport(DocumentModel):
    """Documents deleted and failed per collection"""
    deleted: Dict[str, int]
    failed: Dict[str, int]

    @property
    def ok(self) -> bool:
        return not any(self.failed.values())
