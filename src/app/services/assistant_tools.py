"""
Assistant Tools: 채팅 모델에 노출되는 도구.

- get_system_stats: 테이블별 건수 (Redis read-through 캐시, 60초)
- get_recent_users: 최근 가입 사용자
- generate_*_report: CSV 생성 + 1회용 다운로드 링크 (1시간)

도구 실패는 예외 대신 {"success": False, "message", "error"}로 모델에 돌려준다.
메시지는 최종 사용자에게 그대로 보일 수 있으므로 pt-BR.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from redis.exceptions import RedisError
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from src.app.providers.base import Toolbox
from src.app.services.export import ExportService
from src.core.cache import RedisService
from src.domain.models import Conversation, Document, Form, Message, User
from src.domain.schemas import ExportResult
from src.render.formatting import format_date_br, format_datetime_br

logger = logging.getLogger(__name__)

DEFAULT_RECENT_USERS_LIMIT = 10
MAX_RECENT_USERS_LIMIT = 100
STATS_CACHE_TTL_SECONDS = 60

# =============================================================================
# Tool Definitions (Messages API `tools` 형식)
# =============================================================================

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "get_system_stats",
        "description": "Obtém estatísticas gerais do sistema Ikated "
                       "(usuários, conversas, mensagens, documentos, formulários).",
        "input_schema": {"type": "object", "properties": {}},
    },
    {
        "name": "get_recent_users",
        "description": "Lista os usuários cadastrados mais recentemente.",
        "input_schema": {
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "description": "Número máximo de usuários (padrão: 10)",
                },
            },
        },
    },
    {
        "name": "generate_users_report",
        "description": "Gera relatório completo de usuários em CSV para download.",
        "input_schema": {
            "type": "object",
            "properties": {
                "include_address": {
                    "type": "boolean",
                    "description": "Incluir endereços no relatório (padrão: true)",
                },
            },
        },
    },
    {
        "name": "generate_conversations_report",
        "description": "Gera relatório de conversas em CSV para download.",
        "input_schema": {
            "type": "object",
            "properties": {
                "include_messages": {
                    "type": "boolean",
                    "description": "Incluir número de mensagens (padrão: false)",
                },
            },
        },
    },
    {
        "name": "generate_documents_report",
        "description": "Gera relatório de documentos processados em CSV para download.",
        "input_schema": {
            "type": "object",
            "properties": {
                "include_extracted_data": {
                    "type": "boolean",
                    "description": "Incluir dados extraídos (padrão: true)",
                },
            },
        },
    },
]


def _bool_arg(arguments: dict[str, Any], name: str, default: bool) -> bool:
    value = arguments.get(name)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "sim")
    return bool(value)


class AssistantToolbox(Toolbox):
    """
    DB 조회 + 리포트 생성 도구.

    Usage:
        toolbox = AssistantToolbox(db, export_service, cache=redis_service)
        result = await toolbox.execute("get_system_stats", {})
    """

    def __init__(
        self,
        db: Session,
        export_service: ExportService,
        cache: RedisService | None = None,
    ):
        self.db = db
        self.export_service = export_service
        self.cache = cache
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]] = {
            "get_system_stats": self.get_system_stats,
            "get_recent_users": self.get_recent_users,
            "generate_users_report": self.generate_users_report,
            "generate_conversations_report": self.generate_conversations_report,
            "generate_documents_report": self.generate_documents_report,
        }

    def definitions(self) -> list[dict[str, Any]]:
        return TOOL_DEFINITIONS

    async def execute(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """도구 실행. 알 수 없는 이름/실패는 success=False."""
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning(f"Unknown tool requested: {name}")
            return {
                "success": False,
                "message": f"Ferramenta desconhecida: {name}",
                "error": "UNKNOWN_TOOL",
            }

        try:
            return await handler(arguments or {})
        except Exception as e:
            logger.error(f"Tool '{name}' failed: {e}", exc_info=True)
            return {
                "success": False,
                "message": f"Erro ao executar {name}",
                "error": str(e),
            }

    # =========================================================================
    # Stats
    # =========================================================================

    def _count(self, model: type) -> int:
        return self.db.scalar(select(func.count()).select_from(model)) or 0

    async def _load_stats(self) -> dict[str, int]:
        return {
            "totalUsers": self._count(User),
            "totalConversations": self._count(Conversation),
            "totalMessages": self._count(Message),
            "totalDocuments": self._count(Document),
            "totalForms": self._count(Form),
        }

    async def _stats(self) -> dict[str, int]:
        """건수 조회. 캐시가 있으면 read-through, Redis 장애 시 DB 직접 조회."""
        if self.cache is None:
            return await self._load_stats()
        try:
            return await self.cache.cache_query(
                RedisService.generate_report_key("system_stats"),
                self._load_stats,
                ttl=STATS_CACHE_TTL_SECONDS,
            )
        except (RedisError, OSError) as e:
            logger.warning(f"Stats cache unavailable, querying database: {e}")
            return await self._load_stats()

    async def get_system_stats(self, arguments: dict[str, Any]) -> dict[str, Any]:
        stats = await self._stats()
        message = (
            "📊 **Estatísticas do Sistema Ikated**\n\n"
            f"👥 **Usuários**: {stats['totalUsers']}\n"
            f"💬 **Conversas**: {stats['totalConversations']}\n"
            f"📝 **Mensagens**: {stats['totalMessages']}\n"
            f"📄 **Documentos**: {stats['totalDocuments']}\n"
            f"📋 **Formulários**: {stats['totalForms']}"
        )
        return {"success": True, "stats": stats, "message": message}

    async def get_recent_users(self, arguments: dict[str, Any]) -> dict[str, Any]:
        try:
            limit = int(arguments.get("limit") or DEFAULT_RECENT_USERS_LIMIT)
        except (TypeError, ValueError):
            limit = DEFAULT_RECENT_USERS_LIMIT
        limit = min(max(limit, 1), MAX_RECENT_USERS_LIMIT)

        users = self.db.scalars(
            select(User).order_by(User.created_at.desc()).limit(limit)
        ).all()

        lines = [
            f"• **{u.name}** ({u.email}) - {format_date_br(u.created_at)}" for u in users
        ]
        message = f"👥 **Usuários Recentes** ({len(users)} encontrados)\n\n" + "\n".join(lines)

        return {
            "success": True,
            "users": [
                {
                    "id": u.id,
                    "name": u.name,
                    "email": u.email,
                    "createdAt": u.created_at.isoformat() if u.created_at else None,
                }
                for u in users
            ],
            "message": message,
        }

    # =========================================================================
    # Reports
    # =========================================================================

    async def _report_response(self, result: ExportResult, title: str, noun: str) -> dict[str, Any]:
        link = await self.export_service.publish(result)
        generated = format_datetime_br(datetime.fromisoformat(result.generated_at))
        message = (
            f"{title}\n\n"
            f"✅ **{result.record_count} {noun}** exportados para CSV\n"
            f"📁 **Arquivo**: {link.filename}\n"
            f"⏰ **Gerado em**: {generated}\n\n"
            f"🔗 **Download**: [Clique aqui para baixar]({link.url})\n\n"
            "O link é válido por 1 hora e pode ser usado uma única vez."
        )
        return {
            "success": True,
            "message": message,
            "downloadKey": link.key,
            "downloadUrl": link.url,
            "filename": link.filename,
            "recordCount": result.record_count,
        }

    async def generate_users_report(self, arguments: dict[str, Any]) -> dict[str, Any]:
        result = self.export_service.users_report(
            include_address=_bool_arg(arguments, "include_address", True)
        )
        return await self._report_response(
            result, "📊 **Relatório de Usuários Gerado!**", "usuários"
        )

    async def generate_conversations_report(self, arguments: dict[str, Any]) -> dict[str, Any]:
        result = self.export_service.conversations_report(
            include_messages=_bool_arg(arguments, "include_messages", False)
        )
        return await self._report_response(
            result, "💬 **Relatório de Conversas Gerado!**", "conversas"
        )

    async def generate_documents_report(self, arguments: dict[str, Any]) -> dict[str, Any]:
        result = self.export_service.documents_report(
            include_extracted_data=_bool_arg(arguments, "include_extracted_data", True)
        )
        return await self._report_response(
            result, "📄 **Relatório de Documentos Gerado!**", "documentos"
        )
