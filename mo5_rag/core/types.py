"""
MO5 RAG Core Types
------------------
Pydantic models for the arguments the bridge forwards to the search backend.
"""

from typing import Any, Dict, List, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MAX_RESULTS = 5
DEFAULT_MIN_SIMILARITY_SCORE = 0.7


class SearchQuery(BaseModel):
    """Validated `semantic_search` arguments with defaults applied."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    query: str
    tags: List[str] = Field(default_factory=list)
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, ge=1, alias="maxResults")
    min_similarity_score: float = Field(
        default=DEFAULT_MIN_SIMILARITY_SCORE,
        ge=0.0,
        le=1.0,
        alias="minSimilarityScore",
    )

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query must be a non-empty string")
        return value

    @classmethod
    def from_arguments(cls, arguments: Mapping[str, Any]) -> "SearchQuery":
        """Build from a tool argument bag; explicit nulls count as absent."""
        present = {key: value for key, value in arguments.items() if value is not None}
        return cls.model_validate(present)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "tags": list(self.tags),
            "maxResults": self.max_results,
            "minSimilarityScore": self.min_similarity_score,
            "includeMetadata": True,
        }
