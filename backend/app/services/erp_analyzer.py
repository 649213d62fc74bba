"""
ERP analysis service
Runs analysis prompts through the model client and splits the reply into
analysis, recommendation and next-step sections
"""

import logging
import re
from typing import Dict, List, Optional

from app.schemas.chat import AnalysisResponse
from app.services.conversation_memory import ConversationMemory
from app.services.model_client import ModelClient
from app.utils.prompts import ANALYSIS_PROMPTS, SPECIALIZED_PROMPTS, PromptBuilder
from app.utils.validators import validate_choice

logger = logging.getLogger(__name__)

ANALYSIS_TYPES = list(ANALYSIS_PROMPTS) + list(SPECIALIZED_PROMPTS)

_SECTION_MARKERS = {
    "analysis": ("analysis:", "## analysis"),
    "recommendations": ("recommendations:", "## recommendations"),
    "next_steps": ("next steps:", "## next steps"),
}
_LIST_ITEM = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.*\S)")


def extract_sections(content: str) -> Dict[str, str]:
    """Split a reply on Analysis / Recommendations / Next Steps headings"""
    sections: Dict[str, str] = {}
    current = "main"
    buffer: List[str] = []

    for line in content.split("\n"):
        lowered = line.lower()
        marker = next(
            (name for name, needles in _SECTION_MARKERS.items() if any(n in lowered for n in needles)),
            None,
        )
        if marker:
            sections[current] = "\n".join(buffer)
            current = marker
            buffer = []
        else:
            buffer.append(line)

    sections[current] = "\n".join(buffer)
    return sections


def list_items(section: Optional[str]) -> List[str]:
    if not section:
        return []
    items = [m.group(1) for m in map(_LIST_ITEM.match, section.split("\n")) if m]
    return items or [line.strip() for line in section.split("\n") if line.strip()]


class ERPAnalyzer:
    """LLM-backed ERP requirement, gap and risk analysis"""

    def __init__(self, model_client: ModelClient, prompt_builder: PromptBuilder, memory: ConversationMemory):
        self.model_client = model_client
        self.prompt_builder = prompt_builder
        self.memory = memory

    async def analyze(
        self,
        requirements: str,
        analysis_type: str = "business_requirements",
        session_id: Optional[str] = None,
        module: str = "general",
        industry: str = "general",
        complexity: str = "medium",
    ) -> AnalysisResponse:
        """
        Analyze requirements with the template selected by ``analysis_type``.

        The result is attached to the session when ``session_id`` is known.

        Raises:
            ValidationException: Unknown analysis type
            LLMServiceException: The model call failed
        """
        validate_choice(analysis_type, ANALYSIS_TYPES, "analysis_type")

        instructions = ANALYSIS_PROMPTS.get(analysis_type) or self.prompt_builder.specialized_prompt(analysis_type)
        conversation_context = self.memory.context_summary(session_id) if session_id and self.memory.get(session_id) else None
        user_prompt = f"{instructions}\n\nBusiness Requirements:\n{requirements}"

        messages = [
            {"role": "system", "content": self.prompt_builder.erp_prompt(module, complexity, industry)},
        ]
        if conversation_context:
            messages.append({"role": "system", "content": conversation_context})
        messages.append({"role": "user", "content": user_prompt})

        completion = await self.model_client.complete(messages)
        sections = extract_sections(completion.content)

        response = AnalysisResponse(
            analysis_type=analysis_type,
            content=sections.get("main", "").strip() or completion.content,
            analysis=(sections.get("analysis") or "").strip() or None,
            recommendations=list_items(sections.get("recommendations")),
            next_steps=list_items(sections.get("next_steps")),
            metadata={
                "module": module,
                "industry": industry,
                "complexity": complexity,
                "model": completion.model,
                "tokens_used": completion.total_tokens,
                "response_time_ms": completion.latency_ms,
            },
        )

        if session_id:
            record = await self.memory.add_analysis_result(
                session_id, analysis_type, response.model_dump(exclude={"success", "analysis_id"})
            )
            if record:
                response.analysis_id = record.id

        logger.info(f"Completed {analysis_type} analysis (session={session_id})")
        return response
