"""
Static MCP catalog: the semantic_search tool, the documents:// and
ingestion:// resources, and the mo5_expert prompt.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

JSON_SCHEMA_2020_12 = "https://json-schema.org/draft/2020-12/schema"

SEARCH_TOOL_NAME = "semantic_search"
EXPERT_PROMPT_NAME = "mo5_expert"
TEXT_MIME_TYPE = "text/plain"

URI_DOCUMENT_LIST = "documents://list"
URI_TAG_LIST = "documents://tags"
URI_INDEX_STATUS = "ingestion://status"
URI_DOCUMENT_PREFIX = "documents://"


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    input_schema: Dict[str, Any]
    read_only: bool = True
    destructive: bool = False
    idempotent: bool = True

    def to_wire(self) -> Dict[str, Any]:
        schema = copy.deepcopy(self.input_schema)
        schema.setdefault("$schema", JSON_SCHEMA_2020_12)
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": schema,
            "annotations": {
                "readOnlyHint": self.read_only,
                "destructiveHint": self.destructive,
                "idempotentHint": self.idempotent,
                "openWorldHint": True,
            },
        }


@dataclass(frozen=True)
class ResourceDescriptor:
    uri: str
    name: str
    description: str
    mime_type: str = TEXT_MIME_TYPE

    def to_wire(self) -> Dict[str, Any]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }


@dataclass(frozen=True)
class ResourceTemplateDescriptor:
    uri_template: str
    name: str
    description: str
    mime_type: str = TEXT_MIME_TYPE

    def to_wire(self) -> Dict[str, Any]:
        return {
            "uriTemplate": self.uri_template,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }


@dataclass(frozen=True)
class PromptDescriptor:
    name: str
    description: str
    title: str
    messages: Tuple[str, ...] = field(default_factory=tuple)

    def to_wire(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description}

    def render(self) -> Dict[str, Any]:
        return {
            "description": self.title,
            "messages": [
                {"role": "user", "content": {"type": "text", "text": text}}
                for text in self.messages
            ],
        }


SEARCH_TOOL = ToolDescriptor(
    name=SEARCH_TOOL_NAME,
    description="Semantic search over the Thomson MO5 documentation knowledge base.",
    input_schema={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "The question or search keywords."},
            "tags": {"type": "array", "items": {"type": "string"}, "description": "Filter by topic tags."},
            "maxResults": {"type": "number", "default": 5, "description": "Max number of results (default 5)."},
            "minSimilarityScore": {
                "type": "number",
                "default": 0.7,
                "minimum": 0.0,
                "maximum": 1.0,
                "description": "Minimum similarity score of a hit, 0.0 to 1.0 (default 0.7).",
            },
        },
        "required": ["query"],
    },
)

TOOLS: Tuple[ToolDescriptor, ...] = (SEARCH_TOOL,)

RESOURCES: Tuple[ResourceDescriptor, ...] = (
    ResourceDescriptor(URI_DOCUMENT_LIST, "Document list", "Lists every indexed file."),
    ResourceDescriptor(URI_TAG_LIST, "Tags", "Lists the available topic tags."),
    ResourceDescriptor(URI_INDEX_STATUS, "Status", "Health of the RAG indexing pipeline."),
)

RESOURCE_TEMPLATES: Tuple[ResourceTemplateDescriptor, ...] = (
    ResourceTemplateDescriptor(
        f"{URI_DOCUMENT_PREFIX}{{id}}",
        "Document",
        "Full text of one indexed document, by ID.",
    ),
)

EXPERT_PROMPT = PromptDescriptor(
    name=EXPERT_PROMPT_NAME,
    description="Thomson MO5 expert assistant backed by the document base.",
    title="MO5 expert",
    messages=(
        "You are an expert on the Thomson MO5 microcomputer. Use the semantic_search "
        "tool to answer precisely, citing your sources.",
    ),
)

PROMPTS: Tuple[PromptDescriptor, ...] = (EXPERT_PROMPT,)


def list_tools_payload() -> List[Dict[str, Any]]:
    return [tool.to_wire() for tool in TOOLS]


def list_resources_payload() -> List[Dict[str, Any]]:
    return [resource.to_wire() for resource in RESOURCES]


def list_resource_templates_payload() -> List[Dict[str, Any]]:
    return [template.to_wire() for template in RESOURCE_TEMPLATES]


def list_prompts_payload() -> List[Dict[str, Any]]:
    return [prompt.to_wire() for prompt in PROMPTS]


def find_prompt(name: str) -> PromptDescriptor:
    for prompt in PROMPTS:
        if prompt.name == name:
            return prompt
    raise KeyError(name)
