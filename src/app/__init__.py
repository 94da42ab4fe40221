"""
App layer: API 서버 (FastAPI).

역할:
- routes: HTTP 입출력 (검증, 응답 형식)
- services: 대화, 문서 분석, 폼, 내보내기, 다운로드 링크
- providers: LLM 연동 (Anthropic Claude)

에러는 서비스에서 AppError로 발생시키고 main.py 핸들러가 HTTP로 변환.
"""
