"""
Headline metrics for the CRM dashboard.
"""

from datetime import datetime, timezone
from typing import Dict, Any

from sqlalchemy import func

from models import Lead, Interaction, PipelineStage
from storage import CRMStore


RECENT_ACTIVITY_LIMIT = 10


def get_dashboard_metrics(store: CRMStore) -> Dict[str, Any]:
    counts = store.counts()
    with store.get_session() as session:
        average_score = session.query(func.avg(Lead.score)).scalar() or 0.0
        rows = session.query(Lead.stage, func.count(Lead.id)).group_by(Lead.stage).all()
        stage_counts = {stage.value: 0 for stage in PipelineStage}
        for stage, count in rows:
            stage_counts[stage.value] = count

        recent = (
            session.query(Interaction)
            .order_by(Interaction.created_at.desc())
            .limit(RECENT_ACTIVITY_LIMIT)
            .all()
        )
        recent_activity = [
            {**interaction.to_dict(), "lead_name": interaction.lead.full_name}
            for interaction in recent
        ]

    return {
        "total_leads": counts["leads"],
        "total_companies": counts["companies"],
        "average_score": round(float(average_score), 2),
        "qualified_leads": counts["leads"] - stage_counts[PipelineStage.NEW.value],
        "stage_counts": stage_counts,
        "messages_sent": counts["messages_sent"],
        "recent_activity": recent_activity,
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }
