"""Memory module: fact models, classification, storage and retrieval."""

from .answerer import QuestionAnswerer, clean_content
from .classifier import LLMFactClassifier, classify
from .models import (
    PERSONAL_DATA_TYPES,
    SELF,
    ClassifiedFact,
    DataType,
    Fact,
    FactMetadata,
    storage_key,
)
from .profile import UserProfile, build_profile, list_facts, search_facts
from .store import FactStore, InMemoryFactStore, ResilientFactStore, SQLiteFactStore

__all__ = [
    "PERSONAL_DATA_TYPES",
    "SELF",
    "ClassifiedFact",
    "DataType",
    "Fact",
    "FactMetadata",
    "FactStore",
    "InMemoryFactStore",
    "LLMFactClassifier",
    "QuestionAnswerer",
    "ResilientFactStore",
    "SQLiteFactStore",
    "UserProfile",
    "build_profile",
    "classify",
    "clean_content",
    "list_facts",
    "search_facts",
    "storage_key",
]
