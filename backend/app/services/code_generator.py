"""
ERP code generation service
"""

import logging
import re
from typing import List, Optional

from app.schemas.chat import CodeGenerationResponse
from app.services.conversation_memory import ConversationMemory
from app.services.model_client import ModelClient
from app.utils.prompts import PromptBuilder

logger = logging.getLogger(__name__)

_CODE_BLOCK = re.compile(r"```[\w+-]*\n([\s\S]*?)\n```")
_ANY_FENCE = re.compile(r"```[\s\S]*?```")
_TEST_LINE = re.compile(r"test[:\s]+(.*)", re.IGNORECASE)


def extract_code_blocks(content: str) -> List[str]:
    return _CODE_BLOCK.findall(content)


def extract_explanation(content: str) -> str:
    return _ANY_FENCE.sub("", content).strip()


def extract_test_cases(content: str) -> List[str]:
    explanation = extract_explanation(content)
    return [m.group(1).strip() for m in _TEST_LINE.finditer(explanation) if m.group(1).strip()]


def generate_documentation(code_blocks: List[str], language: str) -> str:
    blocks = "\n".join(
        f"\n### Code Block {index}\n```{language.lower()}\n{block}\n```\n"
        for index, block in enumerate(code_blocks, start=1)
    )
    return (
        f"# Generated {language} Code Documentation\n\n"
        "## Overview\n"
        "This code was generated by EVA ERP Assistant based on the provided requirements.\n\n"
        "## Code Structure\n"
        f"{blocks}\n"
        "## Usage Instructions\n"
        "Please review the generated code and adapt it to your specific environment and requirements.\n\n"
        "## Notes\n"
        "- Ensure proper testing before deployment\n"
        "- Follow your organization's coding standards\n"
        "- Consider security and performance implications\n"
    )


class CodeGenerator:
    """Generates ERP code (ABAP, integrations, workflows) through the model client"""

    def __init__(self, model_client: ModelClient, prompt_builder: PromptBuilder, memory: ConversationMemory):
        self.model_client = model_client
        self.prompt_builder = prompt_builder
        self.memory = memory

    async def generate(
        self,
        requirements: str,
        language: str = "ABAP",
        erp_system: str = "SAP",
        complexity: str = "medium",
        include_tests: bool = True,
        session_id: Optional[str] = None,
    ) -> CodeGenerationResponse:
        messages = [
            {"role": "system", "content": self.prompt_builder.code_generation_prompt(language, erp_system, complexity)},
            {
                "role": "user",
                "content": f"Generate {language} code for {erp_system} with the following requirements:\n\n{requirements}",
            },
        ]
        completion = await self.model_client.complete(messages)
        content = completion.content

        code_blocks = extract_code_blocks(content)
        response = CodeGenerationResponse(
            # no fenced blocks: treat the whole reply as code
            code="\n\n".join(code_blocks) if code_blocks else content,
            explanation=extract_explanation(content),
            documentation=generate_documentation(code_blocks or [content], language),
            test_cases=extract_test_cases(content) if include_tests else None,
            metadata={
                "language": language,
                "erp_system": erp_system,
                "complexity": complexity,
                "include_tests": include_tests,
                "model": completion.model,
                "tokens_used": completion.total_tokens,
            },
        )

        if session_id:
            record = await self.memory.add_generated_artifact(
                session_id, f"code:{language.lower()}", response.model_dump(exclude={"success", "artifact_id"})
            )
            if record:
                response.artifact_id = record.id

        logger.info(f"Generated {language} code for {erp_system} ({len(code_blocks)} blocks)")
        return response
