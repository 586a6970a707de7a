"""Buyer license library endpoint."""

from fastapi import APIRouter

from blockmarket.api.dependencies import RequesterId, Services
from blockmarket.handlers.purchasing.schemas import LicenseListItem
from blockmarket.storage.repositories import Repositories

router = APIRouter()


@router.get("/me/licenses", response_model=list[LicenseListItem])
async def list_my_licenses(requester_id: RequesterId, services: Services) -> list[LicenseListItem]:
    """All licenses owned by the requester, newest first."""
    async with services.database.session() as session:
        summaries = await Repositories.for_session(session).licenses.list_for_buyer(requester_id)

    return [LicenseListItem.from_summary(summary) for summary in summaries]
