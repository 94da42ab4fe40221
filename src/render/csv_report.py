"""
CSV 렌더러: 표준 csv 모듈 기반.

- 헤더: 컬럼 제목
- 레코드 1개 = 1행, 값이 없으면 빈 문자열
- UTF-8 (BOM 없음)
"""

import csv
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from src.domain.errors import AppError, ErrorCodes

logger = logging.getLogger(__name__)

# (레코드 키, 컬럼 제목)
Column = tuple[str, str]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Sim" if value else "Não"
    return str(value)


def render_csv(
    columns: Sequence[Column],
    records: Iterable[dict[str, Any]],
    output_path: Path,
) -> int:
    """
    레코드 목록을 CSV로 저장.

    Args:
        columns: (키, 제목) 목록. 순서대로 출력
        records: 레코드 dict 목록
        output_path: 출력 파일 경로

    Returns:
        기록된 행 수 (헤더 제외)

    Raises:
        AppError: EXPORT_FAILED
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    count = 0

    try:
        with open(output_path, "w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            writer.writerow([title for _, title in columns])
            for record in records:
                writer.writerow([_cell(record.get(key)) for key, _ in columns])
                count += 1
    except OSError as e:
        logger.error(f"CSV render failed ({output_path.name}): {e}")
        raise AppError(ErrorCodes.EXPORT_FAILED, filename=output_path.name) from e

    logger.info(f"CSV written: {output_path.name} ({count} rows)")
    return count
