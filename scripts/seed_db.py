"""
Script to populate the database with sample CRM data.
Companies, leads, templates, scoring profiles, interactions and messages are
created only when no companies exist; eval cases only when none exist.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from models import (
    Company, Lead, MessageTemplate, ScoringProfile, Interaction, Message, EvalCase,
    PipelineStage, LeadSource, MessageDirection, MessageChannel, MessageStatus, EvalCategory
)
from observability import trace_logger
from storage import CRMStore


COMPANIES = [
    {"name": "TechCorp Solutions", "domain": "techcorp.com", "size": 250, "industry": "SaaS"},
    {"name": "DataFlow Analytics", "domain": "dataflow.io", "size": 120, "industry": "Data Analytics"},
    {"name": "CloudScale Systems", "domain": "cloudscale.net", "size": 500, "industry": "Cloud Infrastructure"},
    {"name": "GrowthFirst Marketing", "domain": "growthfirst.com", "size": 75, "industry": "Digital Marketing"},
    {"name": "SecureNet Security", "domain": "securenet.com", "size": 180, "industry": "Cybersecurity"},
]

# (company index, lead fields, score breakdown)
LEADS = [
    (0, {
        "full_name": "John Smith", "title": "VP of Sales", "email": "john.smith@techcorp.com",
        "linkedin_url": "https://linkedin.com/in/johnsmith", "source": LeadSource.OUTBOUND,
        "score": 85, "stage": PipelineStage.QUALIFIED,
        "notes": "Interested in improving sales efficiency",
    }, {"industry_fit": 90, "size_fit": 85, "title_fit": 95, "tech_signals": 80}),
    (1, {
        "full_name": "Sarah Johnson", "title": "Head of Data Science", "email": "sarah.johnson@dataflow.io",
        "linkedin_url": "https://linkedin.com/in/sarahjohnson", "source": LeadSource.INBOUND,
        "score": 92, "stage": PipelineStage.OUTREACH,
        "notes": "Looking for data pipeline optimization",
    }, {"industry_fit": 95, "size_fit": 90, "title_fit": 90, "tech_signals": 95}),
    (2, {
        "full_name": "Michael Chen", "title": "CTO", "email": "michael.chen@cloudscale.net",
        "linkedin_url": "https://linkedin.com/in/michaelchen", "source": LeadSource.OUTBOUND,
        "score": 78, "stage": PipelineStage.NEW,
        "notes": "Exploring automation solutions",
    }, {"industry_fit": 85, "size_fit": 75, "title_fit": 90, "tech_signals": 70}),
    (3, {
        "full_name": "Emily Rodriguez", "title": "Marketing Director", "email": "emily.rodriguez@growthfirst.com",
        "linkedin_url": "https://linkedin.com/in/emilyrodriguez", "source": LeadSource.INBOUND,
        "score": 65, "stage": PipelineStage.REPLIED,
        "notes": "Scheduled demo for next week",
    }, {"industry_fit": 70, "size_fit": 80, "title_fit": 75, "tech_signals": 50}),
    (4, {
        "full_name": "David Kim", "title": "Security Engineer", "email": "david.kim@securenet.com",
        "linkedin_url": "https://linkedin.com/in/davidkim", "source": LeadSource.OUTBOUND,
        "score": 88, "stage": PipelineStage.MEETING_SCHEDULED,
        "notes": "Demo scheduled for Friday 2pm",
    }, {"industry_fit": 90, "size_fit": 85, "title_fit": 80, "tech_signals": 95}),
]

TEMPLATES = [
    {
        "name": "Cold Outreach - VP Sales",
        "body": (
            "Hi {{firstName}},\n\nI noticed {{companyName}} is growing rapidly in the {{industry}} space. "
            "Many companies like yours are struggling with {{painPoint}}.\n\n"
            "Our solution has helped similar companies achieve {{valueProp}}.\n\n"
            "Would you be interested in a 15-minute chat to explore if this could work for {{companyName}}?\n\n"
            "Best regards,\n{{senderName}}"
        ),
    },
    {
        "name": "Follow-up - No Response",
        "body": (
            "Hi {{firstName}},\n\nI wanted to follow up on my previous email about {{valueProp}} for {{companyName}}.\n\n"
            "I understand you're busy, so I'll keep this brief. Would a 10-minute call work better for you?\n\n"
            "If not, just let me know and I'll remove you from our list.\n\nThanks,\n{{senderName}}"
        ),
    },
    {
        "name": "Meeting Confirmation",
        "body": (
            "Hi {{firstName}},\n\nGreat! I'm looking forward to our {{meetingType}} on {{meetingDate}} at {{meetingTime}}.\n\n"
            "We'll discuss how {{companyName}} can achieve {{valueProp}} and address your {{painPoint}} challenges.\n\n"
            "I'll send a calendar invite shortly. Let me know if you need to reschedule.\n\n"
            "Best regards,\n{{senderName}}"
        ),
    },
]

SCORING_PROFILES = [
    {
        "name": "High-Growth SaaS",
        "weights": {"industry_fit": 0.3, "size_fit": 0.2, "title_fit": 0.3, "tech_signals": 0.2},
        "rules": {
            "must_have": ["domain", "title includes VP"],
            "preferred": ["industry in SaaS, Data, Cloud"],
        },
    },
    {
        "name": "Enterprise Focus",
        "weights": {"industry_fit": 0.25, "size_fit": 0.4, "title_fit": 0.25, "tech_signals": 0.1},
        "rules": {
            "must_have": ["size > 500"],
            "preferred": ["industry in Tech, Finance, Healthcare"],
        },
    },
]

EVAL_CASES = [
    {
        "name": "Lead Scoring - SaaS VP Sales",
        "description": "Test lead scoring for a SaaS company VP of Sales",
        "category": EvalCategory.SCORING,
        "input": {
            "full_name": "John Smith",
            "title": "VP of Sales",
            "company": {"name": "TechCorp Solutions", "industry": "SaaS", "size": 250, "domain": "techcorp.com"},
            "source": "outbound",
            "notes": "Interested in improving sales efficiency",
        },
        "expected_output": {
            "score": {"type": "number", "min": 70, "max": 100},
            "factors": {"type": "object"},
            "rationale": {"type": "string", "minLength": 20},
        },
        "criteria": [
            {"name": "score_range", "description": "Score should be between 70-100 for high-fit leads",
             "weight": 0.3, "validator": "custom"},
            {"name": "factors_structure", "description": "All scoring factors should be present",
             "weight": 0.2, "validator": "contains"},
            {"name": "rationale_quality", "description": "Rationale should be clear and specific",
             "weight": 0.3, "validator": "llm_judge"},
            {"name": "json_format", "description": "Output should be valid JSON",
             "weight": 0.2, "validator": "custom"},
        ],
        "metadata": {"difficulty": "medium", "tags": ["saas", "vp-sales", "high-fit"]},
    },
    {
        "name": "Outreach Generation - Follow-up",
        "description": "Test outreach message generation for follow-up scenario",
        "category": EvalCategory.OUTREACH,
        "input": {
            "lead": {"full_name": "Sarah Johnson", "title": "Head of Data Science",
                     "company": {"name": "DataFlow Analytics", "industry": "Data Analytics"}},
            "template_body": TEMPLATES[1]["body"],
            "context": "Previous conversation about sales automation",
        },
        "expected_output": {
            "subject": {"type": "string", "minLength": 5},
            "body": {"type": "string", "minLength": 50},
        },
        "criteria": [
            {"name": "subject_present", "description": "Subject line should be present and appropriate",
             "weight": 0.3, "validator": "contains"},
            {"name": "body_length", "description": "Message body should be substantial",
             "weight": 0.4, "validator": "custom"},
            {"name": "professional_tone", "description": "Message should maintain professional tone",
             "weight": 0.3, "validator": "llm_judge"},
        ],
        "metadata": {"difficulty": "easy", "tags": ["follow-up", "professional"]},
    },
    {
        "name": "General AI - Hello World",
        "description": "Basic AI response test",
        "category": EvalCategory.GENERAL,
        "input": {"prompt": "Say hello world in a friendly way"},
        "expected_output": {"response": {"type": "string", "contains": "hello"}},
        "criteria": [
            {"name": "contains_hello", "description": "Response should contain the word hello",
             "weight": 0.6, "validator": "contains"},
            {"name": "friendly_tone", "description": "Response should be friendly",
             "weight": 0.4, "validator": "llm_judge"},
        ],
        "metadata": {"difficulty": "easy", "tags": ["basic", "hello-world", "tone"]},
    },
    {
        "name": "Lead Qualification - Enterprise CTO",
        "description": "Test lead qualification for enterprise CTO",
        "category": EvalCategory.QUALIFICATION,
        "input": {
            "full_name": "Michael Chen",
            "title": "CTO",
            "company": {"name": "CloudScale Systems", "industry": "Cloud Infrastructure",
                        "size": 500, "domain": "cloudscale.net"},
            "source": "outbound",
            "notes": "Exploring automation solutions",
        },
        "expected_output": {
            "qualified": {"type": "boolean", "value": True},
            "confidence": {"type": "number", "min": 0.7, "max": 1.0},
            "reasoning": {"type": "string", "minLength": 30},
            "next_steps": {"type": "array"},
        },
        "criteria": [
            {"name": "qualification_decision", "description": "Should correctly identify enterprise CTO as qualified",
             "weight": 0.4, "validator": "exact_match"},
            {"name": "reasoning_present", "description": "Output should include a reasoning",
             "weight": 0.3, "validator": "contains"},
            {"name": "reasoning_quality", "description": "Reasoning should be logical and specific",
             "weight": 0.3, "validator": "llm_judge"},
        ],
        "metadata": {"difficulty": "medium", "tags": ["enterprise", "cto", "qualification"]},
    },
]


def seed_crm_data(store: CRMStore) -> bool:
    """Create sample CRM records. Returns False when data already exists."""
    with store.get_session() as session:
        if session.query(Company).count() > 0:
            print("Database already contains data, skipping CRM seed...")
            return False

        companies = [Company(**data) for data in COMPANIES]
        session.add_all(companies)
        session.flush()
        print(f"Created {len(companies)} companies")

        leads = []
        for company_index, fields, breakdown in LEADS:
            lead = Lead(
                company_id=companies[company_index].id,
                score_breakdown=breakdown,
                **fields
            )
            leads.append(lead)
        session.add_all(leads)
        session.flush()
        print(f"Created {len(leads)} leads")

        templates = [MessageTemplate(**data) for data in TEMPLATES]
        session.add_all(templates)
        session.flush()
        print(f"Created {len(templates)} message templates")

        profiles = [ScoringProfile(**data) for data in SCORING_PROFILES]
        session.add_all(profiles)
        print(f"Created {len(profiles)} scoring profiles")

        interactions = [
            Interaction(
                lead_id=leads[1].id,
                type="outreach_sent",
                payload={"template_id": templates[0].id, "subject": "Improving Data Pipeline Efficiency"}
            ),
            Interaction(
                lead_id=leads[3].id,
                type="reply_received",
                payload={"message": "Interested in learning more. Can we schedule a demo?"}
            ),
            Interaction(
                lead_id=leads[4].id,
                type="meeting",
                payload={"scheduled_for": "2024-01-19T14:00:00Z", "duration": 30}
            ),
        ]
        session.add_all(interactions)
        print(f"Created {len(interactions)} interactions")

        messages = [
            Message(
                lead_id=leads[1].id,
                direction=MessageDirection.OUTBOUND,
                channel=MessageChannel.EMAIL,
                subject="Improving Data Pipeline Efficiency",
                body="Hi Sarah,\n\nI noticed DataFlow Analytics is growing rapidly...",
                status=MessageStatus.SENT,
                meta={"template_id": templates[0].id}
            ),
            Message(
                lead_id=leads[3].id,
                direction=MessageDirection.INBOUND,
                channel=MessageChannel.EMAIL,
                subject="Re: Marketing Automation Demo",
                body="Hi there,\n\nInterested in learning more...",
                status=MessageStatus.RECEIVED
            ),
        ]
        session.add_all(messages)
        print(f"Created {len(messages)} messages")

    return True


def seed_eval_cases(store: CRMStore) -> bool:
    """Create sample evaluation cases. Returns False when cases already exist."""
    with store.get_session() as session:
        if session.query(EvalCase).count() > 0:
            print("Evaluation cases already exist, skipping eval seed...")
            return False

        cases = [
            EvalCase(
                name=data["name"],
                description=data["description"],
                category=data["category"],
                input=data["input"],
                expected_output=data["expected_output"],
                criteria=data["criteria"],
                metadata_=data["metadata"]
            )
            for data in EVAL_CASES
        ]
        session.add_all(cases)
        print(f"Created {len(cases)} evaluation cases")

    return True


def main():
    store = CRMStore()
    print("Seeding database...")
    with trace_logger.trace():
        seed_crm_data(store)
        seed_eval_cases(store)
        trace_logger.info("Database seed completed")
    print("Database seeding completed")


if __name__ == "__main__":
    main()
