"""
프롬프트 로더.

prompts/{filename}이 있으면 파일 내용, 없으면 코드 기본값.
파일 수정만으로 프롬프트를 바꿀 수 있게 하되, 파일이 없어도 동작해야 함.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CHAT_SYSTEM_PROMPT = """Você é um assistente de IA especializado em análise de dados e geração de relatórios para o sistema Ikated.

Ferramentas disponíveis:
- get_system_stats: estatísticas gerais do sistema
- get_recent_users: usuários cadastrados mais recentemente
- generate_users_report / generate_conversations_report / generate_documents_report: relatórios CSV para download

Sempre forneça o link de download quando gerar um relatório. Os links valem por 1 hora e podem ser usados uma única vez.
Responda em português do Brasil e explique o contexto dos dados apresentados."""

DEFAULT_ANALYZE_DOCUMENT_PROMPT = """Analise o documento acima e extraia as informações pessoais disponíveis.
Retorne apenas um JSON com os campos encontrados:

- nomeCompleto, cpf (XXX.XXX.XXX-XX), rg, dataNascimento (YYYY-MM-DD), email, telefone
- cep (XXXXX-XXX), endereco, numero, bairro, cidade, estado (sigla)
- confidence: sua confiança na extração, de 0 a 1

Se não encontrar um campo, não o inclua no JSON."""


def load_prompt(prompts_dir: Path | None, filename: str, default: str) -> str:
    """
    프롬프트 로드.

    Args:
        prompts_dir: prompts/ 디렉터리 (None이면 기본값)
        filename: 파일명
        default: 파일이 없을 때 사용할 내용

    Returns:
        프롬프트 텍스트
    """
    if prompts_dir is None:
        return default

    prompt_path = prompts_dir / filename
    if not prompt_path.exists():
        logger.debug(f"Prompt file not found, using default: {prompt_path}")
        return default

    text = prompt_path.read_text(encoding="utf-8").strip()
    return text or default
