"""
Forms Routes: 문서 기반 폼 자동 채우기.
"""

from fastapi import APIRouter, Depends, Query

from src.app.dependencies import get_form_service
from src.app.services.forms import FormService
from src.domain.schemas import FormFillRequest, FormFillResponse, FormRecord

api_router = APIRouter()


@api_router.post("/fill-with-ai", response_model=FormFillResponse)
async def fill_with_ai(
    body: FormFillRequest,
    service: FormService = Depends(get_form_service),
) -> FormFillResponse:
    return service.fill_with_documents(body)


@api_router.get("/{form_id}", response_model=FormRecord)
async def get_form(
    form_id: str,
    service: FormService = Depends(get_form_service),
) -> FormRecord:
    return FormRecord.model_validate(service.get(form_id), from_attributes=True)


@api_router.get("", response_model=list[FormRecord])
async def list_forms(
    user_id: str | None = Query(default=None, alias="userId"),
    service: FormService = Depends(get_form_service),
) -> list[FormRecord]:
    """폼 목록 (최신순, userId로 필터)."""
    return [
        FormRecord.model_validate(form, from_attributes=True)
        for form in service.list_forms(user_id)
    ]
