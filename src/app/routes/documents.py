"""
Documents Routes: 문서 업로드 / 개인정보 추출.
"""

from fastapi import APIRouter, Depends, File, Request, UploadFile

from src.app.dependencies import get_analysis_service, get_document_service, get_provider
from src.app.services.documents import DocumentService, IncomingFile
from src.domain.schemas import (
    DocumentAnalysisResponse,
    DocumentRecord,
    DocumentUploadResponse,
)

api_router = APIRouter()


async def _read(upload: UploadFile) -> IncomingFile:
    data = await upload.read()
    return IncomingFile(
        filename=upload.filename or "file",
        content_type=upload.content_type,
        data=data,
    )


@api_router.post("/analyze", response_model=DocumentAnalysisResponse)
async def analyze_documents(
    request: Request,
    documents: list[UploadFile] = File(default=[]),
    service: DocumentService = Depends(get_document_service),
) -> DocumentAnalysisResponse:
    """
    여러 문서 분석 → 추출 데이터 병합.

    실패한 파일은 failedFiles로 보고 (배치 중단 없음).
    파일 검증(400/413)이 Provider 확인(503)보다 먼저.
    """
    files = [await _read(upload) for upload in documents]
    service.validate_files(files)
    service.provider = get_provider(request)
    return await service.analyze_batch(files)


@api_router.post("/upload", response_model=DocumentUploadResponse)
async def upload_document(
    file: UploadFile = File(...),
    service: DocumentService = Depends(get_document_service),
) -> DocumentUploadResponse:
    return service.upload(await _read(file))


@api_router.post("/{document_id}/analyze", response_model=DocumentAnalysisResponse)
async def analyze_stored_document(
    document_id: str,
    service: DocumentService = Depends(get_analysis_service),
) -> DocumentAnalysisResponse:
    """업로드된 문서를 분석하고 extractedData 갱신."""
    return await service.analyze_stored(document_id)


@api_router.get("/{document_id}", response_model=DocumentRecord)
async def get_document(
    document_id: str,
    service: DocumentService = Depends(get_document_service),
) -> DocumentRecord:
    document = service.get(document_id)
    return DocumentRecord.model_validate(document, from_attributes=True)
