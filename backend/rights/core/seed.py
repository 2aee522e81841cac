"""Default page catalog for the beneficiary-records application.

Seeded once into an empty catalog; afterwards pages are edited through the
settings API.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rights.models.catalog import ActionKey, Page
from rights.services.catalog import CatalogStore

logger = logging.getLogger(__name__)

# (page_key, page_name, route_path, section_key, sort_order)
DEFAULT_PAGES: list[tuple[str, str, str, str, int]] = [
    ("dashboard", "Dashboard", "/dashboard", "general", 1),
    ("baseline-qol", "Baseline QOL", "/dashboard/baseline-qol", "beneficiaries", 10),
    ("family-development-plan", "Family Development Plan", "/dashboard/family-development-plan", "beneficiaries", 20),
    ("family-income", "Family Income", "/dashboard/family-income", "beneficiaries", 30),
    ("actual-intervention", "Actual Intervention", "/dashboard/actual-intervention", "beneficiaries", 40),
    ("swb-families", "SWB Families", "/dashboard/swb-families", "beneficiaries", 50),
    ("rops", "ROPs", "/dashboard/rops", "finance", 10),
    ("loan-process", "Loan Process", "/dashboard/finance/loan-process", "finance", 20),
    ("bank-information", "Bank Information", "/dashboard/finance/bank-information", "finance", 30),
    ("baseline-approval", "Baseline Approval", "/dashboard/approval-section/baseline-approval", "approvals", 10),
    ("fdp-approval", "Family Development Plan Approval", "/dashboard/approval-section/family-development-plan-approval", "approvals", 20),
    ("intervention-approval", "Intervention Approval", "/dashboard/approval-section/intervention-approval", "approvals", 30),
    ("bank-account-approval", "Bank Account Approval", "/dashboard/approval-section/bank-account-approval", "approvals", 40),
    ("feasibility-approval", "Feasibility Approval", "/dashboard/feasibility-approval", "approvals", 50),
    ("reports", "Reports", "/dashboard/reports", "reporting", 10),
    ("documents", "Documents", "/dashboard/documents", "reporting", 20),
    ("settings", "Settings", "/dashboard/settings", "administration", 10),
]


async def seed_catalog(session: AsyncSession) -> int:
    """Insert the default pages and their four permissions into an empty catalog.

    Returns:
        Number of pages inserted (0 when the catalog already has pages)
    """
    count = await session.execute(select(func.count()).select_from(Page))
    if count.scalar() > 0:
        logger.info("Catalog already seeded, skipping")
        return 0

    catalog = CatalogStore(session)
    for page_key, page_name, route_path, section_key, sort_order in DEFAULT_PAGES:
        await catalog.create_page(page_key, page_name, route_path, section_key, sort_order)
    await catalog.generate_permissions(list(ActionKey))
    logger.info(f"Seeded {len(DEFAULT_PAGES)} pages")
    return len(DEFAULT_PAGES)
