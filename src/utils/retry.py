"""
재시도 로직 유틸리티.

LLM API 호출의 일시적 실패(rate limit, 연결, 5xx)를 지수 백오프로 재시도합니다.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff_delay(
    attempt: int,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: float = 0.0,
) -> float:
    """
    attempt(0부터)번째 실패 후 대기 시간.

    initial_delay * base^attempt, max_delay 상한.
    jitter > 0이면 ±jitter 비율만큼 무작위 가감.
    """
    delay = min(initial_delay * (exponential_base ** attempt), max_delay)
    if jitter > 0:
        delay *= 1 + random.uniform(-jitter, jitter)
    return max(delay, 0.0)


async def retry_with_exponential_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: float = 0.1,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    label: str = "call",
) -> T:
    """
    지수 백오프를 사용한 재시도.

    Args:
        func: 재시도할 비동기 함수 (인자 없음, 필요하면 closure로 감쌀 것)
        max_retries: 최대 재시도 횟수 (총 시도 = max_retries + 1)
        initial_delay: 초기 대기 시간(초)
        max_delay: 최대 대기 시간(초)
        exponential_base: 지수 백오프 기수
        jitter: 대기 시간 무작위 가감 비율 (0이면 고정)
        exceptions: 재시도할 예외 타입들 (그 외 예외는 즉시 전파)
        label: 로그용 호출 이름

    Returns:
        func의 반환값

    Raises:
        마지막 시도에서 발생한 예외
    """
    attempts = max_retries + 1

    for attempt in range(attempts):
        try:
            result = await func()
            if attempt > 0:
                logger.info(f"{label}: succeeded on attempt {attempt + 1}/{attempts}")
            return result

        except exceptions as e:
            if attempt == max_retries:
                logger.error(f"{label}: all {attempts} attempts failed. Last error: {e}")
                raise

            delay = compute_backoff_delay(
                attempt,
                initial_delay=initial_delay,
                max_delay=max_delay,
                exponential_base=exponential_base,
                jitter=jitter,
            )
            logger.warning(
                f"{label}: attempt {attempt + 1}/{attempts} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)

    # Should never reach here
    msg = "Unexpected retry logic error"
    raise RuntimeError(msg)
