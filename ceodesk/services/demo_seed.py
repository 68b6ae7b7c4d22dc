"""
Demo data for local development (``flask seed-demo``).

Idempotent: re-running returns the existing organisation and users.
"""

import logging

from ceodesk.models import db
from ceodesk.models.auth import ROLE_CODES, Organization, User
from ceodesk.models.request import Category

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = (
    ("Budget", "Spend and budget approvals"),
    ("Hiring", "Headcount and hiring decisions"),
    ("Strategy", "Strategic initiatives and priorities"),
    ("Operations", "Operational changes and escalations"),
)


def seed_demo_org(name: str = "Demo Organisation", slug: str = "demo") -> dict:
    """Create (or fetch) an org with one user per role plus default categories."""
    org = Organization.query.filter_by(slug=slug).first()
    if org is None:
        org = Organization(name=name, slug=slug)
        db.session.add(org)
        db.session.flush()
        logger.info("Seeded organisation %s (%s)", name, org.id)

    users = []
    for role_code in ROLE_CODES:
        email = f"{role_code.lower()}@{slug}.local"
        user = User.query_for_org(org.id).filter_by(email=email).first()
        if user is None:
            user = User(org_id=org.id, email=email, full_name=f"Demo {role_code.title()}", role_code=role_code)
            db.session.add(user)
        users.append(user)

    existing = {c.name for c in Category.query_for_org(org.id).all()}
    for cat_name, description in DEFAULT_CATEGORIES:
        if cat_name not in existing:
            db.session.add(Category(org_id=org.id, name=cat_name, description=description))

    db.session.flush()
    return {"org": org, "users": users}
