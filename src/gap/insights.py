"""
Client Insight Extraction

Turns Lab insight units into ClientInsight records for the client brain.
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from src.context_graph.models import utc_now

from .types import ClientInsight, LabRefinementOutput

logger = logging.getLogger(__name__)

INSIGHT_CATEGORY_MAP = {
    "brand": "brand",
    "website": "website",
    "seo": "seo",
    "content": "content",
    "audience": "audience",
    "creative": "creative",
    "media": "media",
    "demand": "demand",
    "ops": "ops",
    "ux": "website",
    "competitor": "competitive",
}


def map_lab_category(category: str) -> str:
    return INSIGHT_CATEGORY_MAP.get(category, "other")


def extract_insights_from_lab_outputs(
    lab_outputs: List[LabRefinementOutput],
    company_id: str,
    now: Optional[datetime] = None,
) -> List[ClientInsight]:
    """One open ClientInsight per Lab insight unit, sourced to its Lab run."""
    timestamp = (now or utc_now()).isoformat()
    insights = []

    for output in lab_outputs:
        for unit in output.insights:
            insights.append(ClientInsight(
                id=str(uuid.uuid4()),
                company_id=company_id,
                title=unit.title,
                body=unit.summary,
                category=map_lab_category(unit.category),
                severity=unit.severity,
                source={
                    "type": "tool_run",
                    "toolSlug": unit.source_lab_id.value,
                    "toolRunId": output.run_id,
                },
                created_at=timestamp,
                updated_at=timestamp,
                recommendation=unit.recommendation,
                rationale=unit.rationale,
            ))

    logger.info(f"Extracted {len(insights)} insights for {company_id}")
    return insights
