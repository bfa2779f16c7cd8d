"""
Standalone content tools.

POST /api/keywords/research   simulated keyword metrics for a topic
POST /api/content/craft       run the C.R.A.F.T pipeline over supplied content
POST /api/routing/classify    preview the routing decision for a query
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.core.logging import get_logger
from app.services.ai.schema import KeywordEntry, PostProcessResult, RoutingDecision
from app.services.craft.pipeline import CraftPipeline, get_craft_pipeline
from app.services.keywords.annotator import KeywordAnnotator, get_keyword_annotator
from app.services.routing.classifier import QueryClassifier, get_query_classifier
from app.services.routing.regions import DEFAULT_REGION

logger = get_logger(__name__)

router = APIRouter()


class KeywordResearchRequest(BaseModel):
    topic: str = Field(..., description="Topic to research")
    target_region: str = DEFAULT_REGION


class KeywordResearchResponse(BaseModel):
    topic: str
    target_region: str
    keywords: List[KeywordEntry]


class CraftRequest(BaseModel):
    content: str
    target_region: str = DEFAULT_REGION
    focus_term: Optional[str] = None


class ClassifyRequest(BaseModel):
    query: str


@router.post("/keywords/research", response_model=KeywordResearchResponse)
async def keyword_research(
    body: KeywordResearchRequest,
    annotator: KeywordAnnotator = Depends(get_keyword_annotator),
):
    topic = body.topic.strip()
    if not topic:
        raise HTTPException(status_code=400, detail="Field 'topic' is required")
    region = body.target_region.strip().lower() or DEFAULT_REGION
    keywords = annotator.annotate(topic, target_region=region)
    logger.info("keyword_research_completed", topic=topic[:80], target_region=region, results=len(keywords))
    return KeywordResearchResponse(topic=topic, target_region=region, keywords=keywords)


@router.post("/content/craft", response_model=PostProcessResult)
async def craft_content(
    body: CraftRequest,
    pipeline: CraftPipeline = Depends(get_craft_pipeline),
):
    if not body.content.strip():
        raise HTTPException(status_code=400, detail="Field 'content' is required")
    result = pipeline.process(
        body.content,
        target_region=body.target_region.strip().lower() or DEFAULT_REGION,
        focus_term=body.focus_term,
    )
    logger.info(
        "content_craft_completed",
        steps_applied=sum(1 for step in result.steps if step.applied),
        input_length=len(body.content),
        output_length=len(result.text),
    )
    return result


@router.post("/routing/classify", response_model=RoutingDecision)
async def classify_query(
    body: ClassifyRequest,
    classifier: QueryClassifier = Depends(get_query_classifier),
):
    if not body.query.strip():
        raise HTTPException(status_code=400, detail="Field 'query' is required")
    return classifier.classify(body.query)
