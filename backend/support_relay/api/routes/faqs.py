"""
FAQ API routes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..dependencies import get_faq_index
from ...faq import FAQIndex
from ...models.schemas import FAQItem, FAQListResponse, FAQSearchItem, FAQSearchResponse

router = APIRouter()


@router.get("/faqs", response_model=FAQListResponse)
async def list_faqs(
    category: Optional[str] = None,
    faq_index: FAQIndex = Depends(get_faq_index)
):
    """List FAQs, optionally filtered by category."""
    entries = faq_index.by_category(category) if category else faq_index.all()

    return FAQListResponse(
        faqs=[FAQItem(**entry.to_dict()) for entry in entries],
        categories=faq_index.categories(),
        total=len(entries)
    )


@router.get("/faqs/search", response_model=FAQSearchResponse)
async def search_faqs(
    q: str = Query(..., min_length=1, max_length=500),
    faq_index: FAQIndex = Depends(get_faq_index)
):
    """Keyword search over the FAQs, highest score first."""
    matches = faq_index.search(q)

    return FAQSearchResponse(
        query=q,
        results=[FAQSearchItem(**match.to_dict()) for match in matches],
        total=len(matches)
    )
