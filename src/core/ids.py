"""
ID / 파일명 생성: download key, export 파일명, 업로드 저장 파일명

규칙:
- download key는 추측 불가능해야 함 (uuid4)
- 저장 파일명에 경로 구분자/제어문자 금지
"""

import re
import time
import uuid

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def generate_download_key() -> str:
    """
    다운로드 키 생성.

    포맷: uuid4 hex (32자, 불투명)

    Returns:
        download key 문자열
    """
    return uuid.uuid4().hex


def generate_export_filename(prefix: str, ext: str) -> str:
    """
    Export 파일명 생성.

    포맷: {prefix}-{epoch_ms}-{rand8}.{ext}
    예: usuarios-1718000000000-1a2b3c4d.csv

    Args:
        prefix: 파일 종류 (usuarios, conversas, ...)
        ext: 확장자 (점 없이)

    Returns:
        파일명
    """
    unique = uuid.uuid4().hex[:8]
    return f"{prefix}-{_epoch_ms()}-{unique}.{ext.lstrip('.')}"


def generate_stored_filename(original: str) -> str:
    """
    업로드 파일 저장명 생성.

    포맷: {epoch_ms}-{정리된 원본명}

    - 디렉터리 부분 제거 (../, C:\\ 등)
    - 공백 → 밑줄, 그 외 허용되지 않는 문자 → 밑줄
    - 최대 100자
    """
    return f"{_epoch_ms()}-{sanitize_filename(original)}"


def sanitize_filename(name: str) -> str:
    """파일명에서 경로/위험 문자 제거."""
    # 마지막 경로 요소만 사용 (/, \ 모두)
    base = name.replace("\\", "/").rsplit("/", 1)[-1]

    sanitized = _UNSAFE_CHARS.sub("_", base.replace(" ", "_"))

    # 연속 밑줄 정리
    while "__" in sanitized:
        sanitized = sanitized.replace("__", "_")

    # 숨김 파일/상대경로 방지
    sanitized = sanitized.lstrip(".").strip("_")

    return sanitized[:100] if sanitized else "file"
