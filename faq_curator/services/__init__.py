# Services package

from faq_curator.services.duplicate_resolver import (
    DuplicateCheckResult,
    DuplicateResolver,
    ResolutionSummary,
    decide,
    select_candidates,
)
from faq_curator.services.enhancement import FAQEnhancer
from faq_curator.services.faq_service import (
    BulkGenerationResult,
    CleanupResult,
    FAQGenerationResult,
    FAQGeneratorService,
    FAQSources,
    FAQStats,
    SimilarFAQ,
)
from faq_curator.services.faq_types import (
    Candidate,
    CandidateRequest,
    EnhancedFAQ,
    EnhancementInput,
    Outcome,
    PromptMessage,
)
from faq_curator.services.relationships import RelationshipTracker
from faq_curator.services.vector_index import (
    BatchResult,
    FAQMetadata,
    FAQVectorIndex,
    IndexFilter,
    IndexMatch,
    IndexStats,
)
