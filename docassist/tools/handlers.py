from __future__ import annotations

import json
import re
from typing import Any, Mapping

from ..core.config import SearchSettings
from ..core.errors import CollaboratorError
from ..core.logging import get_logger
from ..core.metrics import increment_document_generation
from ..orchestration.state import ConversationDelta, UserContact
from ..orchestration.store import ConversationStateStore
from ..orchestration.synthesis import build_placeholder_mapping, missing_fields, synthesize
from ..services.search import SearchClient, SearchResults
from ..services.tracking import TrackingClient
from ..utils.json_encoding import stringify_value
from .exceptions import ToolArgumentsError
from .normalization import group_thousands, normalize_mapping
from .registry import ToolContext, ToolHandler, ToolKind

logger = get_logger(name=__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

CATEGORY_TITLES: dict[str, str] = {
    "legislacion": "LEGISLATION AND REGULATIONS",
    "jurisprudencia": "CASE LAW AND JUDICIAL DECISIONS",
    "normatividad": "LOCAL AND DISTRICT REGULATIONS",
    "doctrina": "LEGAL DOCTRINE",
    "general": "GENERAL SOURCES",
}


def _string_map(value: Any) -> dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(key): stringify_value(item) for key, item in value.items()}


def _non_blank(data: Mapping[str, str]) -> dict[str, str]:
    return {key: value.strip() for key, value in data.items() if key.strip() and value.strip()}


def _merge_flag(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ToolArgumentsError("'merge' must be true or false.")


def format_search_results(
    query: str,
    results: SearchResults,
    *,
    domain_filter: str | None = None,
    official_domains: tuple[str, ...] = ("gov.co",),
    max_web_results: int = 5,
    max_links_per_category: int = 3,
) -> str:
    def is_official(link: str) -> bool:
        return any(domain in link for domain in official_domains)

    heading = f'SOURCE SEARCH RESULTS: "{query}"'
    if domain_filter:
        heading += f" ({domain_filter})"
    lines = [heading, ""]

    if results.knowledge_base_urls:
        lines.append("OFFICIAL SOURCES:")
        grouped: dict[str, list[str]] = {}
        for item in results.knowledge_base_urls:
            entry = f"- {item.url}" + (f" - {item.description}" if item.description else "")
            grouped.setdefault(item.category, []).append(entry)
        for category, entries in grouped.items():
            lines.append(f"{CATEGORY_TITLES.get(category, category.upper())}:")
            lines.extend(entries[:max_links_per_category])
        lines.append("")

    if results.web_results:
        lines.append("WEB RESULTS (official sources first):")
        ranked = sorted(results.web_results, key=lambda item: not is_official(item.link))
        for index, item in enumerate(ranked[:max_web_results], start=1):
            marker = "[official] " if is_official(item.link) else ""
            lines.append(f"{index}. {marker}{item.title}")
            if item.snippet:
                lines.append(f"   {item.snippet}")
            lines.append(f"   {item.link}")
        lines.append("")

    if results.answer_box and results.answer_box.answer:
        lines.append("DIRECT ANSWER:")
        lines.append(results.answer_box.answer)
        if results.answer_box.source:
            lines.append(f"Source: {results.answer_box.source}")
        lines.append("")

    if results.knowledge_graph and (results.knowledge_graph.title or results.knowledge_graph.description):
        lines.append("CONTEXT:")
        lines.append(results.knowledge_graph.title)
        lines.append(results.knowledge_graph.description)
        lines.append("")

    lines.extend(
        [
            "GUIDANCE:",
            "- Prefer official sources ({}).".format(", ".join(official_domains)),
            "- Check that a rule is still in force before citing it.",
            "- Use these results to guide the user, not as legal advice.",
            "- Always mention the official sources consulted.",
        ]
    )
    return "\n".join(lines)


class ToolHandlers:
    """Handlers for every :class:`ToolKind`, bound to the state store and collaborators."""

    def __init__(
        self,
        *,
        store: ConversationStateStore,
        search: SearchClient,
        tracking: TrackingClient,
        search_settings: SearchSettings | None = None,
    ) -> None:
        self._store = store
        self._search = search
        self._tracking = tracking
        self._search_settings = search_settings or SearchSettings()

    def table(self) -> dict[ToolKind, ToolHandler]:
        return {
            ToolKind.SEARCH_SOURCES: self.search_sources,
            ToolKind.VALIDATE_INFORMATION: self.validate_information,
            ToolKind.NORMALIZE_INFORMATION: self.normalize_information,
            ToolKind.STORE_COLLECTED_DATA: self.store_collected_data,
            ToolKind.GENERATE_DOCUMENT: self.generate_document,
            ToolKind.REQUEST_CONTACT_INFO: self.request_contact_info,
            ToolKind.REQUEST_CLARIFICATION: self.request_clarification,
        }

    async def search_sources(self, arguments: dict[str, Any], context: ToolContext) -> str:
        query = str(arguments.get("query") or "").strip()
        if not query:
            raise ToolArgumentsError("A non-empty 'query' is required to search sources.")
        domain_filter = arguments.get("legal_area") or arguments.get("domain_filter")
        source_type = arguments.get("source_type")
        try:
            results = await self._search.search(query, domain_filter=domain_filter, source_type=source_type)
        except CollaboratorError as exc:
            logger.warning("source_search_failed", query=query, error=str(exc))
            return f"Error searching sources: {exc}"
        if results is None:
            return "The source search did not return any results."
        settings = self._search_settings
        return format_search_results(
            query,
            results,
            domain_filter=domain_filter,
            official_domains=tuple(settings.official_domains),
            max_web_results=settings.max_web_results,
            max_links_per_category=settings.max_links_per_category,
        )

    async def validate_information(self, arguments: dict[str, Any], context: ToolContext) -> str:
        collected = _string_map(arguments.get("collectedData"))
        if not collected:
            record = await self._store.get(context.key)
            collected = dict(record.collected_data) if record is not None else {}
        missing = missing_fields(collected, context.profile.fields)
        if missing:
            return (
                f"Incomplete information. Missing fields: {', '.join(missing)}. "
                "Collect this information before generating the document."
            )
        return "All required information has been collected. You can proceed to generate the document."

    async def normalize_information(self, arguments: dict[str, Any], context: ToolContext) -> str:
        raw = arguments.get("rawData")
        if not isinstance(raw, Mapping) or not raw:
            raise ToolArgumentsError("'rawData' must be a non-empty object of field names to values.")
        return json.dumps(normalize_mapping(raw), ensure_ascii=False, indent=2)

    async def store_collected_data(self, arguments: dict[str, Any], context: ToolContext) -> str:
        data = _non_blank(_string_map(arguments.get("data")))
        if not data:
            raise ToolArgumentsError(
                "No data to store. Send 'data' as an object with at least one non-empty field value."
            )
        merge = _merge_flag(arguments.get("merge"))
        mapping = build_placeholder_mapping(data, context.profile.fields)
        record = await self._store.merge_write(
            context.key,
            ConversationDelta(collected_data=data, placeholder_mapping=mapping),
            merge=merge,
        )
        return (
            f"Stored {len(data)} field(s). The conversation now has "
            f"{len(record.collected_data)} collected field(s)."
        )

    async def generate_document(self, arguments: dict[str, Any], context: ToolContext) -> str:
        record = await self._store.get(context.key)
        collected = _non_blank(_string_map(arguments.get("documentData")))
        if collected:
            mapping = build_placeholder_mapping(collected, context.profile.fields)
        elif record is not None:
            collected = dict(record.collected_data)
            mapping = dict(record.placeholder_mapping)
        else:
            mapping = {}
        if not collected and not mapping:
            increment_document_generation(outcome="no_data")
            raise ToolArgumentsError("No information has been collected yet for this document.")

        user_name, user_email = self._resolve_identity(arguments, context, record)
        if not user_name or not user_email:
            increment_document_generation(outcome="missing_identity")
            raise ToolArgumentsError(
                "The user's name and email are required before generating the document. "
                "Ask for them with request_contact_info."
            )

        profile = context.profile
        result = synthesize(
            profile.template.content,
            profile.fields,
            collected,
            mapping,
            observations=arguments.get("userRequests"),
        )
        if not result.complete:
            increment_document_generation(outcome="incomplete")
            raise ToolArgumentsError(
                "The document cannot be generated yet. Missing information for: "
                f"{', '.join(result.unresolved_required)}."
            )

        try:
            receipt = await self._tracking.register(
                document_content=result.text,
                document_type=profile.document_type,
                user_name=user_name,
                user_email=user_email,
                sla_hours=profile.sla_hours,
            )
        except CollaboratorError:
            increment_document_generation(outcome="tracking_failed")
            raise
        increment_document_generation(outcome="generated")
        logger.info(
            "document_generated",
            agent_id=profile.agent_id,
            tracking_id=receipt.tracking_id,
            unresolved_optional=len(result.unresolved),
        )
        price = group_thousands(str(int(receipt.price)))
        return (
            f"Document generated successfully. Tracking code: {receipt.tracking_id}. "
            f"Price: ${price} COP. Estimated delivery: {receipt.sla_deadline.isoformat()}."
        )

    async def request_contact_info(self, arguments: dict[str, Any], context: ToolContext) -> str:
        record = await self._store.get(context.key)
        if context.authenticated or (record is not None and record.is_authenticated):
            raise ToolArgumentsError(
                "The user is already signed in and their name and email are known. "
                "Do not ask for contact information."
            )
        user_name = str(arguments.get("user_name") or "").strip()
        user_email = str(arguments.get("user_email") or "").strip()
        if not user_name or not user_email:
            raise ToolArgumentsError("Both 'user_name' and 'user_email' are required.")
        if not _EMAIL_PATTERN.match(user_email):
            raise ToolArgumentsError(f"'{user_email}' is not a valid email address. Ask the user to confirm it.")
        await self._store.merge_write(
            context.key,
            ConversationDelta(user_contact=UserContact(name=user_name, email=user_email, authenticated=False)),
        )
        return f"Contact information saved for {user_name} ({user_email})."

    async def request_clarification(self, arguments: dict[str, Any], context: ToolContext) -> str:
        question = str(arguments.get("question") or "").strip()
        if not question:
            raise ToolArgumentsError("A 'question' is required to request clarification.")
        field = str(arguments.get("field") or "").strip() or "a field"
        return f"I need clarification about {field}: {question}"

    @staticmethod
    def _resolve_identity(arguments: dict[str, Any], context: ToolContext, record: Any) -> tuple[str, str]:
        name = str(arguments.get("user_name") or "").strip()
        email = str(arguments.get("user_email") or "").strip()
        contact = record.user_contact if record is not None else None
        if contact is not None:
            name = name or contact.name
            email = email or contact.email
        user_context = context.user_context
        if user_context is not None and user_context.is_authenticated:
            name = name or (user_context.name or "")
            email = email or (user_context.email or "")
        return name, email


__all__ = ["CATEGORY_TITLES", "ToolHandlers", "format_search_results"]
