"""
Bundle pricing audit: cron job that flags purchasable folders priced above
the sum of their current leaf prices.

Negative bundle savings are legal catalog data, so nothing is rejected or
rewritten here. The job only reports, and optionally exits non-zero so the
cron run shows up as failed.

Run as:
    python -m marketplace.workers.bundle_pricing_audit_job
"""

import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from marketplace.catalog.hierarchy import HierarchyResolver
from marketplace.catalog.store import CatalogStore
from marketplace.config import BUNDLE_AUDIT_FAIL_ON_MISCONFIGURED, LOG_LEVEL
from marketplace.database.session import get_db_session_sync
from marketplace.models.base import MediaCategory
from marketplace.pricing.service import PriceResolver

logger = logging.getLogger(__name__)


@dataclass
class BundleAuditStats:
    """Statistics from a bundle pricing audit run."""

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    folders_checked: int = 0
    misconfigured: List[str] = field(default_factory=list)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        duration = None
        if self.completed_at:
            duration = (self.completed_at - self.started_at).total_seconds()

        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "folders_checked": self.folders_checked,
            "misconfigured_count": len(self.misconfigured),
            "misconfigured_folder_ids": list(self.misconfigured),
            "duration_seconds": duration,
        }


def run_bundle_pricing_audit(
    db_session: Session,
    category: Optional[MediaCategory] = None,
) -> BundleAuditStats:
    """
    Quote every purchasable folder and log the ones with negative savings.

    Args:
        db_session: Database session
        category: Limit the audit to one media category

    Returns:
        BundleAuditStats with results
    """
    stats = BundleAuditStats()
    catalog = CatalogStore(db_session)
    resolver = PriceResolver(catalog, HierarchyResolver(catalog))

    for folder in catalog.purchasable_folders(category):
        quote = resolver.quote_node(folder)
        stats.folders_checked += 1
        if quote.misconfigured:
            stats.misconfigured.append(folder.id)
            logger.warning(
                "pricing.bundle_misconfigured",
                extra={
                    "folder_id": folder.id,
                    "media_category": folder.media_category.value,
                    "bundle_price": str(quote.amount),
                    "leaf_total": str(quote.leaf_total),
                    "bundle_savings": str(quote.bundle_savings),
                },
            )

    stats.completed_at = datetime.now(timezone.utc)
    logger.info("pricing.bundle_audit_completed", extra=stats.to_dict())
    return stats


def main() -> int:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    session_gen = get_db_session_sync()
    db_session = next(session_gen)
    try:
        stats = run_bundle_pricing_audit(db_session)
    finally:
        session_gen.close()

    if stats.misconfigured and BUNDLE_AUDIT_FAIL_ON_MISCONFIGURED:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
